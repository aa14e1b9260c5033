from __future__ import annotations

from typing import Sequence

import pytest

from stylesmith.services.postprocess import (
    PassthroughRewriter,
    PostProcessOptions,
    dedup_deterministic,
    dedup_successful,
    detect_repeated_words,
    has_leaked_meta,
    post_process,
    post_process_locked,
    strip_leaked_meta_lines,
    strip_meta_deterministic,
    truncate_to_limit,
    validate_and_fix_format,
)
from stylesmith.services.trace import TraceCollector

CLEAN_PROMPT = (
    "[Smooth, Warm, Jazz, Key: D minor]\n"
    "\n"
    "Genre: Jazz\n"
    "BPM: between 80 and 160\n"
    "Mood: smooth, warm\n"
    "Instruments: upright bass, piano, tenor sax\n"
    "Style Tags: analog warmth, lounge club reverb\n"
    "Recording: studio session, vintage console"
)


class RecordingRewriter:
    def __init__(self, condensed: str | None = None, rewritten: str | None = None) -> None:
        self.calls: list[str] = []
        self.repeated: list[Sequence[str]] = []
        self.rewrite_inputs: list[str] = []
        self._condensed = condensed
        self._rewritten = rewritten

    async def rewrite_without_meta(self, text: str) -> str:
        self.calls.append("rewrite_without_meta")
        self.rewrite_inputs.append(text)
        return text if self._rewritten is None else self._rewritten

    async def condense(self, text: str) -> str:
        self.calls.append("condense")
        return text if self._condensed is None else self._condensed

    async def condense_with_dedup(self, text: str, repeated_words: Sequence[str]) -> str:
        self.calls.append("condense_with_dedup")
        self.repeated.append(list(repeated_words))
        return text


def _options(rewriter, *, max_chars: int = 1000, min_chars: int = 20) -> PostProcessOptions:
    return PostProcessOptions.from_rewriter(rewriter, max_chars=max_chars, min_chars=min_chars)


def test_strip_leaked_meta_lines() -> None:
    text = "Genre: Jazz\nOutput only the prompt\nHere's the revised prompt\nMood: warm"
    assert strip_leaked_meta_lines(text) == "Genre: Jazz\nMood: warm"
    assert not has_leaked_meta(strip_leaked_meta_lines(text))


def test_strip_meta_deterministic_patterns() -> None:
    text = (
        "Here is your prompt:\n"
        "Genre: Jazz [Note: keep it short]\n"
        "Note: ignore this\n"
        "Output: something\n"
        "\n\n\n\n"
        "Mood: warm (note: subtle)"
    )
    cleaned = strip_meta_deterministic(text)
    assert "Note" not in cleaned
    assert "note" not in cleaned
    assert "Output:" not in cleaned
    assert "Here is" not in cleaned
    assert "\n\n\n" not in cleaned
    assert cleaned.startswith("Genre: Jazz")


def test_strip_meta_deterministic_ignores_case() -> None:
    text = (
        "Genre: Jazz\n"
        "output: the prompt follows\n"
        "INSTRUCTIONS: keep it short\n"
        "response: ok\n"
        "HERE'S WHAT CHANGED:\n"
        "here is the prompt:\n"
        "Mood: warm"
    )
    assert strip_meta_deterministic(text) == "Genre: Jazz\n\nMood: warm"


def test_validate_and_fix_format() -> None:
    assert validate_and_fix_format("  [Header]\nGenre: Jazz  ") == "[Header]\nGenre: Jazz"
    fixed = validate_and_fix_format("Genre: Jazz\nMood: Smooth, Warm")
    assert fixed.startswith("[Smooth, Jazz, Key: C Major]\n\nGenre: Jazz")
    assert validate_and_fix_format("just words").startswith("[Evocative, Cinematic, Key: C Major]")


def test_dedup_deterministic_keeps_blank_lines() -> None:
    text = "a line\n\nb line\na line\n\n  b line  "
    assert dedup_deterministic(text) == "a line\n\nb line\n"


def test_detect_repeated_words() -> None:
    text = "warm piano, warm strings; (piano) sax sax"
    assert detect_repeated_words(text) == ["warm", "piano"]
    assert dedup_successful(text)
    assert not dedup_successful("alpha beta gamma delta alpha beta gamma delta")


def test_truncate_to_limit() -> None:
    text = "first part, second part, third part, fourth part"
    cut = truncate_to_limit(text, 30)
    assert len(cut) <= 30
    assert cut.endswith("...")
    assert cut == "first part, second part..."
    assert truncate_to_limit("short", 30) == "short"
    assert truncate_to_limit("x" * 40, 20) == "x" * 17 + "..."


@pytest.mark.asyncio
async def test_clean_prompt_passes_through_unchanged() -> None:
    rewriter = RecordingRewriter()
    result = await post_process(CLEAN_PROMPT, _options(rewriter))
    assert result == CLEAN_PROMPT
    assert rewriter.calls == []


@pytest.mark.asyncio
async def test_pipeline_is_idempotent() -> None:
    messy = "Genre: Jazz\nMood: Smooth\nOutput only the prompt\nGenre: Jazz\nInstruments: piano"
    options = _options(PassthroughRewriter())
    once = await post_process(messy, options)
    twice = await post_process(once, options)
    assert once == twice
    assert not has_leaked_meta(once)
    assert once.startswith("[Smooth, Jazz, Key: C Major]")
    assert once.count("Genre: Jazz") == 1


@pytest.mark.asyncio
async def test_length_budget_is_enforced() -> None:
    rewriter = RecordingRewriter()
    long_text = CLEAN_PROMPT + "\n" + ", ".join(f"tag{index}" for index in range(400))
    result = await post_process(long_text, _options(rewriter, max_chars=300))
    assert len(result) <= 300
    assert "condense" in rewriter.calls


@pytest.mark.asyncio
async def test_condense_result_within_budget_is_used() -> None:
    rewriter = RecordingRewriter(condensed="[Warm, Jazz]\n\nGenre: Jazz\nInstruments: piano")
    long_text = CLEAN_PROMPT + "\n" + "filler " * 200
    result = await post_process(long_text, _options(rewriter, max_chars=200))
    assert result == "[Warm, Jazz]\n\nGenre: Jazz\nInstruments: piano"


@pytest.mark.asyncio
async def test_safety_floor_returns_original() -> None:
    rewriter = RecordingRewriter(condensed="[x]")
    long_text = CLEAN_PROMPT + "\n" + "filler " * 200
    result = await post_process(long_text, _options(rewriter, max_chars=200, min_chars=20))
    assert result == long_text.strip()


@pytest.mark.asyncio
async def test_repeated_words_escalate_to_dedup_collaborator() -> None:
    rewriter = RecordingRewriter()
    text = (
        "[Warm]\n\n"
        "alpha beta gamma delta\n"
        "alpha beta gamma delta epsilon\n"
    )
    trace = TraceCollector(run_id="pp")
    await post_process(text, _options(rewriter), trace)
    assert rewriter.calls == ["condense_with_dedup"]
    assert rewriter.repeated == [["alpha", "beta", "gamma", "delta"]]
    assert trace.summary()["rewrites"] == 1


@pytest.mark.asyncio
async def test_collaborator_failure_propagates() -> None:
    class FailingRewriter(RecordingRewriter):
        async def condense(self, text: str) -> str:
            raise RuntimeError("boom")

    trace = TraceCollector(run_id="err")
    with pytest.raises(RuntimeError, match="boom"):
        await post_process(CLEAN_PROMPT + "\n" + "filler " * 300, _options(FailingRewriter()), trace)
    assert trace.summary()["errors"] == 1


@pytest.mark.asyncio
async def test_passthrough_rewriter_is_identity() -> None:
    rewriter = PassthroughRewriter()
    assert await rewriter.rewrite_without_meta("a") == "a"
    assert await rewriter.condense("b") == "b"
    assert await rewriter.condense_with_dedup("c", ["c"]) == "c"


@pytest.mark.asyncio
async def test_leak_exposed_by_pattern_strip_escalates_to_rewrite() -> None:
    rewriter = RecordingRewriter(rewritten="Genre: Jazz\nNote: rewritten by model\nInstruments: piano, bass")
    text = "Genre: Jazz\noutput [Note: x]only\nInstruments: piano"
    result = await post_process(text, _options(rewriter))
    assert rewriter.calls == ["rewrite_without_meta"]
    assert rewriter.rewrite_inputs == ["Genre: Jazz\noutput only\nInstruments: piano"]
    assert "Note" not in result
    assert "output" not in result
    assert result.endswith("Instruments: piano, bass")


@pytest.mark.asyncio
async def test_leak_after_condense_escalates_in_final_cleanup() -> None:
    rewriter = RecordingRewriter(condensed="[Warm, Jazz]\n\nGenre: Jazz\noutput [Note: y]only\nInstruments: piano")
    long_text = CLEAN_PROMPT + "\n" + "filler " * 200
    trace = TraceCollector(run_id="final")
    result = await post_process(long_text, _options(rewriter, max_chars=200), trace)
    assert rewriter.calls[-2:] == ["condense", "rewrite_without_meta"]
    assert rewriter.calls.count("rewrite_without_meta") == 1
    assert result == "[Warm, Jazz]\n\nGenre: Jazz\nInstruments: piano"


@pytest.mark.asyncio
async def test_rewrite_failure_propagates() -> None:
    class FailingRewriter(RecordingRewriter):
        async def rewrite_without_meta(self, text: str) -> str:
            raise RuntimeError("rewrite down")

    trace = TraceCollector(run_id="rw")
    with pytest.raises(RuntimeError, match="rewrite down"):
        await post_process(
            "Genre: Jazz\noutput [Note: x]only\nInstruments: piano", _options(FailingRewriter()), trace
        )
    assert trace.summary()["errors"] == 1


@pytest.mark.asyncio
async def test_locked_phrase_survives_meta_stripping() -> None:
    text = CLEAN_PROMPT.replace("tenor sax", "output only strings")
    options = _options(PassthroughRewriter())
    assert "output only strings" not in await post_process(text, options)
    result = await post_process_locked(text, options, "output only strings")
    assert "Instruments: upright bass, piano, output only strings" in result


@pytest.mark.asyncio
async def test_locked_phrase_budget_accounts_for_restored_length() -> None:
    phrase = "a very long locked phrase for the lead synth"
    text = "[Warm, Jazz]\n\nGenre: Jazz\nInstruments: piano, " + phrase + "\n" + "filler " * 100
    result = await post_process_locked(text, _options(PassthroughRewriter(), max_chars=150), phrase)
    assert phrase in result
    assert len(result) <= 150
    assert await post_process_locked(CLEAN_PROMPT, _options(PassthroughRewriter()), None) == CLEAN_PROMPT
