"""Read-only query selectors."""

from approval_kernel.selectors.base import BaseSelector
from approval_kernel.selectors.org_selector import OrgSelector

__all__ = ["BaseSelector", "OrgSelector"]
