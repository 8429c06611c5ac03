"""Clean-review detection.

Decides from the agent's free-text review reply whether the code was
reported clean. A reply counts as clean only when its last non-blank line
is a bare clean verdict (the review prompt asks for ``NO ISSUES FOUND``)
and nothing in the reply mentions fixing or finding problems.
"""

import re


CLEAN_VERDICT = re.compile(
    r"(?:no (?:further |remaining |additional |other )?issues (?:were |have been )?(?:found|identified|detected)"
    r"|(?:i )?found no (?:further |remaining |additional )?issues"
    r"|no (?:further |additional )?changes (?:are |were )?(?:needed|necessary|required)"
    r"|(?:the )?code is clean"
    r"|nothing to fix)",
    re.IGNORECASE,
)

ISSUE_PATTERNS = [
    re.compile(r"\bfixed\b", re.IGNORECASE),
    re.compile(r"\bfound \d+ (?:\w+ )?(?:issues?|bugs?|problems?)\b", re.IGNORECASE),
    re.compile(r"(?<!\bno )\b(?:issues?|bugs?|problems?) (?:were |was )?found(?: and| in)\b", re.IGNORECASE),
    re.compile(r"\bI(?: have|'ve)? (?:changed|updated|modified|refactored|corrected|replaced|added|removed)\b", re.IGNORECASE),
    re.compile(r"\b(?:has|have|contains?) (?:a|an|one|some|several|\d+) (?:\w+ )?(?:bugs?|issues?|problems?)\b", re.IGNORECASE),
    re.compile(r"\bneeds? (?:attention|fixing|to be fixed)\b", re.IGNORECASE),
]

# markdown emphasis, quoting and trailing punctuation around the verdict line
_VERDICT_DECORATION = " \t*_`>#.!"


def _verdict_line(output: str) -> str:
    lines = [line.strip(_VERDICT_DECORATION) for line in output.splitlines()]
    lines = [line for line in lines if line]
    return lines[-1] if lines else ""


def detect_no_issues(output: str) -> bool:
    """Return True when the review reply ends on a clean verdict and reports nothing else.

    Example:
        >>> detect_no_issues("Reviewed all changes.\\nNO ISSUES FOUND")
        True
        >>> detect_no_issues("No issues found in the tests, but the parser has a bug.")
        False
    """
    if not CLEAN_VERDICT.fullmatch(_verdict_line(output)):
        return False
    return not any(pattern.search(output) for pattern in ISSUE_PATTERNS)
