"""List queries: field-list sanitization and the generic pager."""

from entityforge.query.fields import sanitize_field_list
from entityforge.query.pager import EntityPager, ListParams, ListResult

__all__ = ["EntityPager", "ListParams", "ListResult", "sanitize_field_list"]
