"""
Base class for emoji categories.
"""


class ComponentEmoji:
    """
    Namespace of emoji constants for one category.

    Subclasses only declare upper-case string attributes.

    Example:
        >>> class MyEmoji(ComponentEmoji):
        ...     HELLO = "👋"
    """
