"""Request path to invite pool key resolution.

Accepted shapes::

    /{campaign}
    /{campaign}/{category}
    /:{scope}/{campaign}
    /:{scope}/{campaign}/{category}

Campaign and category are upper-cased; the sort key is ``CAMPAIGN`` or
``CAMPAIGN#CATEGORY``. Segments after the category are ignored. The function
is pure: no I/O, no logging.
"""

from invite_redirect.schemas import ResolvedKey

__all__ = ["resolve_path", "build_sort_key", "DEFAULT_SCOPE_MARKER"]

DEFAULT_SCOPE_MARKER = ":"


def build_sort_key(campaign: str, category: str | None = None) -> str:
    campaign = campaign.upper()
    if category:
        return f"{campaign}#{category.upper()}"
    return campaign


def resolve_path(path: str | None, scope_marker: str = DEFAULT_SCOPE_MARKER) -> ResolvedKey | None:
    """Derive the campaign/category key from a URL-decoded path.

    Returns None for an empty path, the root path, or a path with no campaign
    segment once the scope segment is taken off.
    """
    if not path or path == "/":
        return None

    parts = path.removeprefix("/").split("/")
    scope = None
    if scope_marker and parts[0].startswith(scope_marker):
        scope = parts[0][len(scope_marker):] or None
        parts = parts[1:]

    campaign = parts[0] if parts else ""
    category = parts[1] if len(parts) > 1 else ""
    if not campaign:
        return None

    return ResolvedKey(
        scope=scope,
        campaign=campaign.upper(),
        category=category.upper() or None,
        sort_key=build_sort_key(campaign, category),
    )
