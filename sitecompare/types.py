"""Enums and type aliases for sitecompare."""

from enum import StrEnum


class Side(StrEnum):
    REF = "ref"
    NEW = "new"


class CrawlMode(StrEnum):
    LINK = "link"
    CLICK = "click"


class ActionKind(StrEnum):
    ANCHOR = "a"
    BUTTON = "button"
    SCRIPT_HANDLER = "onclick"
    ROLE_LINK = "role-link"
    OTHER = "other"


class AlignPolicy(StrEnum):
    CROP = "crop"
    PAD = "pad"
    RESIZE = "resize"
