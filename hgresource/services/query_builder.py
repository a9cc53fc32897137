"""
Revset construction for hgresource.

Turns a Repository's path, branch and tag filters into a single hg
revset selecting the commits that count as pipeline versions:

    (((include) - (exclude)) & branch('b') & tagfilter) - desc('[ci skip]')

Every configured string is escaped before it lands in the expression,
so a path or branch name can't change the shape of the query.
"""

from typing import Iterable

from ..domain.repository import Repository

# Commits whose message contains this are never reported
SKIP_MARKER = "[ci skip]"

MATCH_ALL = "all()"
MATCH_NONE = "not all()"


def escape_literal(value: str) -> str:
    """
    Escape `value` for use inside a single-quoted revset string.

    Backslashes are escaped twice: once for the revset string literal and
    once for the regular expression the literal is usually handed to.
    """
    backslashes_escaped = value.replace("\\", "\\\\\\\\")
    return backslashes_escaped.replace("'", "\\'")


def union_of_paths(paths: Iterable[str]) -> str:
    return "|".join(f"file('re:{escape_literal(path)}')" for path in paths)


class QueryBuilder:
    """
    Builds revsets for one repository.

    Example:
        builder = QueryBuilder(Repository(path=".", include_paths=("src/",)))
        builder.latest_expression()
        # "last((((file('re:src/')) - (not all())) & branch('default') & all()) - desc('[ci skip]'))"
    """

    def __init__(self, repository: Repository):
        self.repository = repository

    def include_fragment(self) -> str:
        if not self.repository.include_paths:
            return MATCH_ALL
        return union_of_paths(self.repository.include_paths)

    def exclude_fragment(self) -> str:
        if not self.repository.exclude_paths:
            return MATCH_NONE
        return union_of_paths(self.repository.exclude_paths)

    def tag_filter_fragment(self) -> str:
        if not self.repository.tag_filter:
            return MATCH_ALL
        return f"tag('re:{escape_literal(self.repository.tag_filter)}')"

    def branch_fragment(self) -> str:
        return f"branch('{escape_literal(self.repository.branch)}')"

    def filter_expression(self) -> str:
        """Revset matching every commit that qualifies as a version."""
        return (
            f"((({self.include_fragment()}) - ({self.exclude_fragment()}))"
            f" & {self.branch_fragment()}"
            f" & {self.tag_filter_fragment()})"
            f" - desc('{escape_literal(SKIP_MARKER)}')"
        )

    def latest_expression(self) -> str:
        return f"last({self.filter_expression()})"

    def descendants_expression(self, commit_id: str) -> str:
        """Qualifying strict descendants of `commit_id`, oldest first."""
        ref = escape_literal(commit_id)
        return f"sort((descendants('{ref}') - '{ref}') & ({self.filter_expression()}), rev)"
