"""Pattern risk classifier for candidate scripts.

A data-driven gate: an ordered denylist of dangerous constructs, an allowlist
of domain vocabulary, and a parse-only check of syntax and of the restricted
compilation policy. The text patterns are a heuristic: a variable literally
named like a blocked token is rejected, and code spelled in an unrecognised
way slips past them. The policy check is what the executor enforces.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import re
from dataclasses import dataclass
from typing import List, Pattern

from riffbox.sandbox.policy import policy_violations
from riffbox.schemas import Finding, Severity, ValidationVerdict


@dataclass(frozen=True)
class Rule:
    """A denylist rule: pattern, severity, and the construct it names."""

    pattern: Pattern[str]
    severity: Severity
    message: str


def _deny(regex: str, message: str, flags: int = 0) -> Rule:
    return Rule(re.compile(regex, flags), Severity.BLOCKING, message)


# Ordered; every rule is evaluated independently.
DENYLIST = (
    # Unbounded loops
    _deny(r"\bwhile\s*\(?\s*(?:True|true|1)\s*\)?\s*[:{]", "unbounded while loop"),
    _deny(r"\bfor\s*\(\s*;\s*;\s*\)", "unbounded for(;;) loop"),
    _deny(r"\bitertools\.(?:count|cycle|repeat)\b", "unbounded iterator"),
    _deny(r"(?<![\w.])iter\s*\(\s*[\w.]+\s*,", "unbounded iter(callable, sentinel)"),
    # Dynamic code evaluation
    _deny(r"(?<![\w.])eval\s*\(", "dynamic evaluation via eval()"),
    _deny(r"(?<![\w.])exec\s*\(", "dynamic evaluation via exec()"),
    _deny(r"(?<![\w.])compile\s*\(", "dynamic compilation via compile()"),
    # Dynamic module loading
    _deny(r"^\s*(?:import\s+\w|from\s+[\w.]+\s+import\b)", "import statement", re.MULTILINE),
    _deny(r"__import__", "dynamic import via __import__"),
    _deny(r"\bimportlib\b", "dynamic import via importlib"),
    # Interpreter introspection
    _deny(r"__\w+__", "dunder attribute access"),
    _deny(r"(?<![\w.])(?:globals|locals|vars)\s*\(", "namespace introspection"),
    _deny(r"(?<![\w.])(?:getattr|setattr|delattr)\s*\(", "reflective attribute access"),
    # Host process, filesystem and network
    _deny(r"\bos\.", "host process access (os)"),
    _deny(r"\bsys\.", "interpreter access (sys)"),
    _deny(r"\bsubprocess\b", "subprocess access"),
    _deny(r"(?<![\w.])open\s*\(", "filesystem access via open()"),
    _deny(r"\b(?:shutil|pathlib)\b", "filesystem access"),
    _deny(r"\bsocket\b", "network access (socket)"),
    _deny(r"\b(?:urllib|requests\.|http\.client|urlopen)", "network access"),
    _deny(r"(?<![\w.])fetch\s*\(", "network access via fetch()"),
    _deny(r"\bXMLHttpRequest\b", "network access via XMLHttpRequest"),
    # Storage, cookies and navigation
    _deny(r"\b(?:localStorage|sessionStorage)\b", "browser storage access"),
    _deny(r"\bdocument\.cookie\b", "cookie access"),
    _deny(r"\bwindow\.location\b", "location manipulation"),
    _deny(r"\b(?:pickle|shelve|sqlite3)\b", "persistent storage access"),
    # Dangerous gain: a gain-like property set to 10 or more
    _deny(
        r"\.(?:gain(?:\.value)?|amp|volume)\s*=(?!=)\s*\+?0*[1-9]\d+(?:\.\d*)?",
        "excessive gain value (>= 10)",
    ),
)

# Domain vocabulary; absence is advisory only.
ALLOWLIST = tuple(
    re.compile(p)
    for p in (
        r"\bSynth\s*\(",
        r"\bFM\s*\(",
        r"\bMonosynth\s*\(",
        r"\bPluck\s*\(",
        r"\bKick\s*\(",
        r"\bSnare\s*\(",
        r"\bHat\s*\(",
        r"\bClap\s*\(",
        r"\bCowbell\s*\(",
        r"\bE?Drums\s*\(",
        r"\bDelay\s*\(",
        r"\bReverb\s*\(",
        r"\.seq\s*\(",
        r"\.tidal\s*\(",
        r"\.note\s*\(",
        r"\.trigger\s*\(",
        r"\.chord\s*\(",
        r"\bAudio\.",
    )
)

EMPTY_MESSAGE = "Script is empty"
NO_DOMAIN_MESSAGE = "No domain-specific constructs found"


def _line_of(source: str, offset: int) -> int:
    return source.count("\n", 0, offset) + 1


def _parse_findings(source: str) -> List[Finding]:
    """Parse without executing and check the tree against the policy.

    The tree check sees identifiers after normalization, so spellings the
    text patterns miss (e.g. fullwidth underscores) are still caught.
    """
    try:
        violations = policy_violations(source)
    except SyntaxError as e:
        return [Finding(Severity.BLOCKING, f"Syntax error: {e.msg}", e.lineno)]
    except ValueError as e:
        # e.g. source containing null bytes
        return [Finding(Severity.BLOCKING, f"Syntax error: {e}")]
    return [
        Finding(Severity.BLOCKING, f"Script contains a blocked construct: {message}", line)
        for line, message in violations
    ]


def classify(source: str) -> ValidationVerdict:
    """Classify a candidate script.

    Never raises. The verdict is unacceptable iff at least one finding is
    blocking.

    Args:
        source: Raw script text.

    Returns:
        ValidationVerdict with findings in rule order.
    """
    if not source or not source.strip():
        return ValidationVerdict.from_findings([Finding(Severity.BLOCKING, EMPTY_MESSAGE)])

    findings: List[Finding] = []

    for rule in DENYLIST:
        match = rule.pattern.search(source)
        if match:
            findings.append(
                Finding(
                    rule.severity,
                    f"Script contains a blocked construct: {rule.message}",
                    _line_of(source, match.start()),
                )
            )

    if not any(pattern.search(source) for pattern in ALLOWLIST):
        findings.append(Finding(Severity.ADVISORY, NO_DOMAIN_MESSAGE))

    findings.extend(_parse_findings(source))

    return ValidationVerdict.from_findings(findings)


def is_safe(source: str) -> bool:
    """Return True if the script passes the static gate."""
    return classify(source).is_acceptable
