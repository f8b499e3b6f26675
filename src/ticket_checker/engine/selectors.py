"""Centralised selectors for the target application's login, menus and kanban board.

Each logical control is expressed as a LocatorChain so that markup drift only
costs a fallback, not a failure. Update these lists when the UI changes.
"""

from .locators import LocatorChain, LocatorStrategy, StrategyKind

S = StrategyKind

CARD_SELECTORS = (".o_kanban_record", ".kanban-card", ".task-card")
CARD_UNION = ", ".join(CARD_SELECTORS)
CARD_TITLE_SELECTORS = (".o_kanban_record_title", '[name="name"]', ".card-title")

_UPPER = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
_LOWER = "abcdefghijklmnopqrstuvwxyz"


def quote_text(value: str) -> str:
    """Quotes a value for use inside Playwright's :has-text() / :text-is()."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def xpath_literal(value: str) -> str:
    """Builds an XPath string literal, using concat() when both quote kinds appear."""
    if '"' not in value:
        return f'"{value}"'
    if "'" not in value:
        return f"'{value}'"
    parts = value.split('"')
    return "concat(" + ", '\"', ".join(f'"{p}"' for p in parts) + ")"


def folded(expr: str) -> str:
    """XPath expression lower-casing `expr` (ASCII only, XPath 1.0 has no lower-case())."""
    return f"translate({expr}, '{_UPPER}', '{_LOWER}')"


def has_class(name: str) -> str:
    return f"contains(concat(' ', normalize-space(@class), ' '), ' {name} ')"


def text_scan_xpath(title: str, exact: bool, relative: bool = False) -> str:
    """
    Case-folding text scan over element text nodes, independent of any
    structural class names. `relative` anchors the scan at the current node.
    """
    text = folded("normalize-space(text())")
    needle = xpath_literal(" ".join(title.split()).lower())
    predicate = f"{text} = {needle}" if exact else f"contains({text}, {needle})"
    prefix = ".//" if relative else "//"
    return f"xpath={prefix}*[{predicate}]"


# Column headings are the innermost heading-like elements outside any card.
_IN_CARD = (
    "ancestor-or-self::*["
    + " or ".join(has_class(s.lstrip(".")) for s in CARD_SELECTORS)
    + "]"
)
_HEADING_LIKE = (
    "self::h1 or self::h2 or self::h3 or self::h4 or self::h5 or self::h6 "
    "or contains(@class, 'title')"
)
COLUMN_HEADING = f"*[{_HEADING_LIKE}][not(.//*[{_HEADING_LIKE}])][not({_IN_CARD})]"


# --- Authentication ---


def login_trigger_chain() -> LocatorChain:
    return LocatorChain(
        "login trigger",
        [
            LocatorStrategy(S.STRUCTURAL, "span.te_user_account_icon.d-block"),
            LocatorStrategy(S.STRUCTURAL, "i.fa-user-circle-o"),
            LocatorStrategy(S.STRUCTURAL, ".fa-user-circle-o"),
            LocatorStrategy(S.STRUCTURAL, ".fa-user"),
            LocatorStrategy(S.TEXT, "a:has-text('Sign in')"),
        ],
    )


def email_field_chain() -> LocatorChain:
    return LocatorChain(
        "email field",
        [
            LocatorStrategy(S.STRUCTURAL, "input#login"),
            LocatorStrategy(S.ATTRIBUTE, 'input[name="login"]'),
            LocatorStrategy(S.ATTRIBUTE, 'input[type="email"]'),
        ],
    )


def password_field_chain() -> LocatorChain:
    return LocatorChain(
        "password field",
        [
            LocatorStrategy(S.STRUCTURAL, "input#password"),
            LocatorStrategy(S.ATTRIBUTE, 'input[type="password"]'),
        ],
    )


def submit_control_chain() -> LocatorChain:
    return LocatorChain(
        "submit control",
        [
            LocatorStrategy(S.ATTRIBUTE, 'button[type="submit"]'),
            LocatorStrategy(S.ATTRIBUTE, 'input[type="submit"]'),
        ],
    )


def authenticated_indicator_chain() -> LocatorChain:
    return LocatorChain(
        "authenticated indicator",
        [
            LocatorStrategy(S.STRUCTURAL, ".o_main_navbar"),
            LocatorStrategy(S.STRUCTURAL, ".o_menu_apps"),
            LocatorStrategy(S.STRUCTURAL, ".o_user_menu"),
        ],
    )


# --- Navigation ---


def apps_menu_chain() -> LocatorChain:
    return LocatorChain(
        "apps menu",
        [
            LocatorStrategy(S.STRUCTURAL, ".o_menu_apps"),
            LocatorStrategy(S.STRUCTURAL, ".o_menu_toggle"),
            LocatorStrategy(S.STRUCTURAL, ".fa-th"),
        ],
    )


def projects_entry_chain() -> LocatorChain:
    return LocatorChain(
        "projects entry",
        [
            LocatorStrategy(S.TEXT, "text=Projects"),
            LocatorStrategy(S.TEXT, "text=Project"),
        ],
    )


def project_tile_chain(project_name: str) -> LocatorChain:
    return LocatorChain(
        f"project '{project_name}'",
        [
            LocatorStrategy(
                S.STRUCTURAL, f".o_kanban_record:has-text({quote_text(project_name)})"
            ),
            LocatorStrategy(S.TEXT, f"text={project_name}"),
        ],
    )


def board_indicator_chain() -> LocatorChain:
    return LocatorChain(
        "kanban board",
        [
            LocatorStrategy(S.STRUCTURAL, ".o_kanban_view"),
            LocatorStrategy(S.STRUCTURAL, ".o_kanban_group"),
            LocatorStrategy(S.STRUCTURAL, ".kanban-column"),
        ],
    )


# --- Board ---


def section_chain(section_label: str) -> LocatorChain:
    """
    Resolves the column container whose heading reads exactly `section_label`.

    Headings are compared whole (never as substrings), so "Resolved" does not
    pick up "Unresolved", and a card mentioning the label never qualifies a
    column. The heading-anchored strategies climb to the outermost ancestor
    that still holds only one column heading, which is the column itself
    even when the heading sits inside a nested header.
    """
    needle = xpath_literal(" ".join(section_label.split()).lower())
    heading_is = f"{folded('normalize-space(.)')} = {needle}"
    h3 = f"h3[not({_IN_CARD})]"
    return LocatorChain(
        f"section '{section_label}'",
        [
            LocatorStrategy(
                S.STRUCTURAL,
                f".o_kanban_group:has(.o_column_title:text-is({quote_text(section_label)}))",
                "group whose column title is exactly the label",
            ),
            LocatorStrategy(
                S.XPATH,
                f"xpath=//*[{has_class('o_kanban_group')}]"
                f"[.//*[{has_class('o_column_title')}][{heading_is}]]",
                "same, ignoring case",
            ),
            LocatorStrategy(
                S.XPATH,
                f"xpath=//*[{has_class('kanban-column')}][.//{COLUMN_HEADING}[{heading_is}]]",
                "generic column whose heading is the label",
            ),
            LocatorStrategy(
                S.XPATH,
                f"xpath=//{h3}[{heading_is}]/ancestor::*[count(.//{h3}) = 1][last()]",
                "outermost ancestor of an h3 reading the label",
            ),
            LocatorStrategy(
                S.XPATH,
                f"xpath=//{COLUMN_HEADING}[{heading_is}]"
                f"/ancestor::*[count(.//{COLUMN_HEADING}) = 1][last()]",
                "outermost ancestor of any heading reading the label",
            ),
        ],
    )
