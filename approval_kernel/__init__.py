"""
Approval Kernel

Sequential, threshold-driven approval workflows for a construction
line-of-business system:
- Organizational scope resolution over the org-unit tree
- Monetary ceilings per role and entity category
- Minimal-sufficient approver chains with category overlays
- Single-active-step state machine with compare-and-swap decisions
- Hash-chained audit trail
"""

__version__ = "0.1.0"
