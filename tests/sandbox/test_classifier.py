"""Tests for the pattern risk classifier."""

import pytest

from riffbox.sandbox.classifier import (
    ALLOWLIST,
    DENYLIST,
    EMPTY_MESSAGE,
    NO_DOMAIN_MESSAGE,
    classify,
    is_safe,
)
from riffbox.schemas import Severity


class TestEmptySource:
    """Tests for empty and whitespace-only input."""

    @pytest.mark.parametrize("source", ["", "   ", "\n\n", "\t \n  "])
    def test_empty_source_has_single_blocking_finding(self, source):
        """Empty input should be rejected with exactly one finding."""
        verdict = classify(source)

        assert verdict.is_acceptable is False
        assert len(verdict.findings) == 1
        assert verdict.findings[0].severity is Severity.BLOCKING
        assert "empty" in verdict.findings[0].message.lower()
        assert verdict.findings[0].message == EMPTY_MESSAGE


class TestDenylist:
    """Tests for dangerous construct detection."""

    @pytest.mark.parametrize(
        "source",
        [
            "s = Synth()\nwhile True:\n    s.note(60)",
            "while 1:\n    pass",
            "s = Synth()\neval('s.note(60)')",
            "exec('x = 1')",
            "code = compile('1', 'x', 'eval')",
            "import os",
            "from subprocess import run",
            "m = __import__('os')",
            "s = Synth()\ns.__class__",
            "g = globals()",
            "getattr(Audio, 'clear')()",
            "open('/etc/passwd')",
            "s = Synth()\ns.gain = 50",
            "s = Synth()\ns.gain.value = 12",
            "s = Synth()\ns.volume = 100.5",
            "data = pickle.loads(b'')",
            "fetch('http://example.com')",
            "x = document.cookie",
        ],
    )
    def test_denylisted_source_is_rejected(self, source):
        """Any denylisted construct should make the verdict unacceptable."""
        assert classify(source).is_acceptable is False

    def test_high_gain_finding_mentions_gain(self):
        """Gain finding should name the construct."""
        verdict = classify("synth.gain = 50")

        assert verdict.is_acceptable is False
        messages = [f.message for f in verdict.blocking]
        assert any("gain" in m for m in messages)

    def test_low_gain_is_acceptable(self):
        """Gain below the limit should pass."""
        assert classify("synth.gain = 1").is_acceptable is True
        assert classify("synth.gain = 9.5").is_acceptable is True

    def test_gain_comparison_is_not_an_assignment(self):
        """Comparisons are not flagged as gain assignments."""
        verdict = classify("s = Synth()\nloud = s.gain == 50")

        assert verdict.is_acceptable is True

    def test_finding_reports_line_of_match(self):
        """Findings should carry the 1-based line of the first match."""
        verdict = classify("s = Synth()\ns.note(60)\ns.__dict__")

        dunder = [f for f in verdict.blocking if "dunder" in f.message]
        assert len(dunder) == 1
        assert dunder[0].line == 3

    def test_findings_follow_rule_order(self):
        """Each rule is evaluated independently, in table order."""
        verdict = classify("exec('a')\neval('b')")

        messages = [f.message for f in verdict.blocking]
        eval_index = next(i for i, m in enumerate(messages) if "eval()" in m)
        exec_index = next(i for i, m in enumerate(messages) if "exec()" in m)
        assert eval_index < exec_index

    def test_method_named_like_builtin_is_not_flagged(self):
        """Attribute calls such as .open() are not the open() builtin."""
        verdict = classify("s = Synth()\ns.filter.open(1)\nopen_chord = Pluck()")

        assert verdict.is_acceptable is True

    def test_blocked_token_in_variable_name_is_a_false_positive(self):
        """A variable literally named like a blocked token is rejected."""
        verdict = classify("s = Synth()\nsocket = 1")

        assert verdict.is_acceptable is False

    def test_rules_are_blocking(self):
        """Every denylist rule should carry blocking severity."""
        assert all(rule.severity is Severity.BLOCKING for rule in DENYLIST)


class TestAllowlist:
    """Tests for domain vocabulary detection."""

    def test_domain_code_is_acceptable_without_advisory(self):
        """Synth code should pass with no advisory findings."""
        verdict = classify("s = Synth(); s.note(60)")

        assert verdict.is_acceptable is True
        assert verdict.advisories == ()
        assert verdict.findings == ()

    def test_missing_domain_constructs_is_advisory_only(self):
        """Plain code gets a single advisory but is still acceptable."""
        verdict = classify("x = 1 + 2")

        assert verdict.is_acceptable is True
        assert len(verdict.advisories) == 1
        assert verdict.advisories[0].message == NO_DOMAIN_MESSAGE

    @pytest.mark.parametrize(
        "source",
        [
            "k = Kick()",
            "d = EDrums()",
            "verb = Reverb()",
            "s.note.seq([60, 62], 1/4)",
            "s.note.tidal('0 1')",
            "s.trigger(1)",
            "s.chord([0, 2, 4])",
            "Audio.bpm = 90",
        ],
    )
    def test_allowlisted_constructs(self, source):
        """Each domain construct should suppress the advisory."""
        assert classify(source).advisories == ()

    def test_allowlist_is_not_empty(self):
        assert len(ALLOWLIST) > 0


class TestSyntaxCheck:
    """Tests for the parse-only syntax check."""

    def test_syntax_error_is_blocking(self):
        """Unparseable source should be rejected with a line number."""
        verdict = classify("s = Synth(\ns.note(60)")

        assert verdict.is_acceptable is False
        syntax = [f for f in verdict.blocking if f.message.startswith("Syntax error")]
        assert len(syntax) == 1
        assert syntax[0].line is not None

    def test_top_level_await_parses(self):
        """Scripts may await at top level."""
        verdict = classify("s = Synth()\nawait Audio.wait(1)\ns.note(60)")

        assert verdict.is_acceptable is True

    def test_classify_never_raises_on_null_bytes(self):
        """Source the parser refuses outright still yields a verdict."""
        verdict = classify("s = Synth()\x00")

        assert verdict.is_acceptable is False


class TestPolicyCheck:
    """Tests for the check on the parsed tree."""

    def test_fullwidth_underscores_are_caught(self):
        """Fullwidth low lines slip past the text patterns but not the tree check."""
        verdict = classify("s = Synth()\ng = Synth.＿＿func＿＿")

        assert verdict.is_acceptable is False
        [finding] = verdict.blocking
        assert "__func__" in finding.message
        assert finding.line == 2

    def test_generator_frame_walk_is_caught(self):
        source = (
            "s = Synth()\n"
            "def walk():\n"
            "    yield g.gi_frame.f_back\n"
            "g = walk()"
        )

        verdict = classify(source)

        assert verdict.is_acceptable is False
        assert any("gi_frame" in f.message for f in verdict.blocking)
        assert all(f.line == 3 for f in verdict.blocking)

    def test_private_name_is_blocking(self):
        verdict = classify("s = Synth()\n_hidden = s")

        assert verdict.is_acceptable is False

    def test_plain_domain_code_passes(self):
        verdict = classify("lead = Synth()\nfor n in [60, 62]:\n    lead.note(n)")

        assert verdict.is_acceptable is True


class TestVerdictInvariant:
    """Tests for is_acceptable consistency."""

    @pytest.mark.parametrize(
        "source",
        ["", "s = Synth()", "eval('1')", "x = 1", "s = Synth(", "s.gain = 10"],
    )
    def test_acceptable_iff_no_blocking(self, source):
        verdict = classify(source)
        has_blocking = any(f.severity is Severity.BLOCKING for f in verdict.findings)

        assert verdict.is_acceptable is (not has_blocking)

    def test_is_safe_matches_classify(self):
        assert is_safe("s = Synth(); s.note(60)") is True
        assert is_safe("while True:\n    pass") is False
