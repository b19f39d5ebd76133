"""
=============================================================================
REDIRECT RULES
=============================================================================

A rule pairs a regular expression over the FULL request URL with a
synthesizer: a function that receives the pattern's capture groups and
returns the URL to redirect to.

=============================================================================
MATCHING FLOW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        MATCHING FLOW                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Reconstructed URL                                                  │
    │   https://github12321.com/foo/bar.git/info/refs                     │
    │        │                                                             │
    │        ▼                                                             │
    │   ┌─────────────────────────────────────────────────────────────┐   │
    │   │  RULE SET (evaluated top to bottom)                          │   │
    │   │                                                              │   │
    │   │  1. ^(https?)://(github12321\\.com)/([^/]+)/([^/]+\\.git/?)... │   │
    │   │        ← MATCH! groups = ("https", "github12321.com",        │   │
    │   │                           "foo", "bar.git/", "info/refs")    │   │
    │   │  2. ^(https?)://(github12321\\.com)/(.+)$                     │   │
    │   │        ← never tried: rule 1 already matched                │   │
    │   └─────────────────────────────────────────────────────────────┘   │
    │        │                                                             │
    │        ▼                                                             │
    │   synthesize("https", "github12321.com", "foo", "bar.git/",         │
    │              "info/refs")                                            │
    │   → "https://github.com/foo/bar.git/info/refs"                      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
RULES OF THE GAME
=============================================================================

1. WHOLE-STRING MATCH: patterns are applied with fullmatch(), so
   "^...$" anchors are optional and a trailing newline never sneaks in.

2. FIRST MATCH WINS: declaration order is the only tie-break. Put the
   specific rules (repositories) before the catch-alls (everything else).

3. POSITIONAL GROUPS: the synthesizer is called as synthesize(*groups),
   group 0 (the whole match) excluded. An optional group that did not
   take part in the match arrives as None.

4. NO ARITY CHECK: a synthesizer that takes the wrong number of groups
   is only discovered when it is called. The handler turns that failure
   into a 500 for the one request instead of taking the listener down.

=============================================================================
"""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional, Union

from .config import ConfigurationError


logger = logging.getLogger(__name__)


# A synthesizer receives the capture groups positionally (None for groups
# that did not participate) and returns the redirect target.
Synthesizer = Callable[..., str]


@dataclass(frozen=True)
class Rule:
    """
    One redirect rule.

        Rule(
            pattern=r"^(https?)://(github12321\\.com)/(.+)$",
            synthesize=lambda scheme, domain, path: f"{scheme}://github.com/{path}",
            name="catch-all",
        )

    The pattern is compiled once, when the rule is created; an invalid
    regular expression raises re.error right there.
    """

    pattern: str
    synthesize: Synthesizer
    name: Optional[str] = None

    # Internal: compiled regex for matching
    regex: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "regex", re.compile(self.pattern))

    @property
    def group_count(self) -> int:
        """Number of capture groups the synthesizer will be called with."""
        return self.regex.groups

    def match(self, url: str) -> Optional[tuple[Optional[str], ...]]:
        """
        Match the whole URL against this rule.

        Returns:
            The capture groups (None for non-participating ones),
            or None if the URL does not match.
        """
        match = self.regex.fullmatch(url)
        if match is None:
            return None
        return match.groups()


@dataclass(frozen=True)
class RuleMatch:
    """
    Result of a successful rule match.

    Example:
        URL:     https://example.com/foo/bar.git
        Pattern: ^https?://example.com/(.+)/(.+).git/?$
        Result:  RuleMatch(rule=<Rule>, groups=("foo", "bar"),
                           target="https://real.com/foo/bar")
    """

    rule: Rule
    groups: tuple[Optional[str], ...]
    target: str


class RuleSet:
    """
    Ordered, immutable collection of redirect rules.

    The rules are held in a tuple, so a RuleSet can be shared by every
    connection thread without locking.

        rules = RuleSet([
            Rule(r"^https?://example\\.com/(.+)/(.+)\\.git/?$",
                 lambda project, repo: f"https://real.com/{project}/{repo}"),
            Rule(r"^https?://example\\.com/(.+)$",
                 template("https://real.com/{0}")),
        ])

        rules.resolve("https://example.com/foo/bar.git")
        # → "https://real.com/foo/bar"
        rules.resolve("https://other.com/")
        # → None
    """

    def __init__(self, rules: Iterable[Rule] = ()):
        self._rules: tuple[Rule, ...] = tuple(rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules)

    def __getitem__(self, index: int) -> Rule:
        return self._rules[index]

    def __repr__(self) -> str:
        return f"RuleSet({list(self._rules)!r})"

    @property
    def patterns(self) -> list[str]:
        """The patterns in evaluation order, for the startup banner."""
        return [rule.pattern for rule in self._rules]

    def match(self, url: str) -> Optional[RuleMatch]:
        """
        Find the first rule matching the URL and synthesize its target.

        Iterates rules in declaration order and stops at the first match.
        Exceptions raised by the synthesizer propagate to the caller.

        Args:
            url: The reconstructed request URL.

        Returns:
            RuleMatch if a rule matched, None otherwise.
        """
        for rule in self._rules:
            groups = rule.match(url)
            if groups is None:
                logger.debug(f"Did not match regex of form {rule.pattern}.")
                continue

            logger.debug(f"Matched regex of form {rule.pattern}.")
            logger.debug(f"Matches: {groups}")

            target = rule.synthesize(*groups)
            return RuleMatch(rule=rule, groups=groups, target=target)

        logger.debug("Did not match any regexes.")
        return None

    def resolve(self, url: str) -> Optional[str]:
        """Return the redirect target for the URL, or None if no rule matched."""
        result = self.match(url)
        return result.target if result else None

    def print_rules(self) -> None:
        """
        Print the numbered list of patterns.

        Example output:
            Hostname regular expressions being redirected:
            	1. '^(https?)://(github12321\\.com)/(.+)$'
        """
        print("Hostname regular expressions being redirected:")
        if not self._rules:
            print("\t(none: every request will get 404)")
        for index, rule in enumerate(self._rules, start=1):
            print(f"\t{index}. '{rule.pattern}'")


# =============================================================================
# TEMPLATE SYNTHESIZERS
# =============================================================================
#
# Rules loaded from a file cannot carry Python functions, so their target
# is a str.format template over the positional groups:
#
#     "{0}://github.com/{2}/{3}{4}"
#
# Groups that did not participate become "" instead of "None".
#
# =============================================================================

def template(target: str) -> Synthesizer:
    """
    Build a synthesizer from a str.format template.

    Args:
        target: Template referencing groups by position ({0}, {1}, ...).

    Returns:
        A synthesizer. Referencing a group the pattern does not have
        raises IndexError when the rule fires.
    """
    def synthesize(*groups: Optional[str]) -> str:
        return target.format(*(group or "" for group in groups))

    synthesize.__name__ = f"template({target!r})"
    return synthesize


def load_rules(path: Union[str, Path]) -> RuleSet:
    """
    Load a RuleSet from a JSON file.

    Accepted shapes:

        [
          {"pattern": "^(https?)://(example\\\\.com)/(.+)$",
           "target": "{0}://real.com/{2}",
           "name": "catch-all"}
        ]

    or the same list under a top-level "rules" key. "name" is optional.

    Raises:
        ConfigurationError: unreadable file, invalid JSON, missing keys
                            or an invalid regular expression.
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigurationError(f"Cannot read rules file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in rules file {path}: {e}") from e

    if isinstance(data, dict):
        data = data.get("rules")
    if not isinstance(data, list):
        raise ConfigurationError(
            f"Rules file {path} must contain a list of rules "
            f"(or an object with a 'rules' list)"
        )

    rules = []
    for index, entry in enumerate(data, start=1):
        if not isinstance(entry, dict):
            raise ConfigurationError(f"Rule {index} in {path} is not an object")

        pattern = entry.get("pattern")
        target = entry.get("target")
        if not isinstance(pattern, str) or not isinstance(target, str):
            raise ConfigurationError(
                f"Rule {index} in {path} needs string 'pattern' and 'target' keys"
            )

        try:
            rules.append(Rule(pattern, template(target), name=entry.get("name")))
        except re.error as e:
            raise ConfigurationError(
                f"Rule {index} in {path} has an invalid pattern {pattern!r}: {e}"
            ) from e

    logger.debug(f"Loaded {len(rules)} rules from {path}")
    return RuleSet(rules)


# =============================================================================
# DEFAULT RULES
# =============================================================================
#
# Used when no rules file is given. They redirect a stand-in repository
# host to the real one:
#
#     https://github12321.com/project/repo.git[/tail] → https://github.com/...
#     https://github12321.com/anything-else           → https://github.com/...
#
# =============================================================================

DEFAULT_RULES = RuleSet([
    Rule(
        r"^(https?)://(github12321\.com)/([^/]+)/([^/]+\.git/?)(.+)?$",
        template("{0}://github.com/{2}/{3}{4}"),
        name="repository",
    ),
    Rule(
        r"^(https?)://(github12321\.com)/(.+)$",
        template("{0}://github.com/{2}"),
        name="catch-all",
    ),
])
