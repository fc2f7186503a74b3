from .sid import SID, sid_to_str
from .guid import guid_to_str, str_to_guid

__all__ = ["SID", "sid_to_str", "guid_to_str", "str_to_guid"]
