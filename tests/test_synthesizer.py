import pytest

from research_pipeline.backoff import BackoffPolicy
from research_pipeline.errors import TransportError, UnretryableServiceError
from research_pipeline.models import SubtaskResult
from research_pipeline.synthesizer import Synthesizer, concatenate, format_sections

from conftest import FakeProvider

RESULTS = [
    SubtaskResult(index=2, angle="competitive", text="Rivals: A, B and C."),
    SubtaskResult(index=0, angle="facts", text="Market grew 12% in 2026."),
    SubtaskResult(index=1, angle="audience", text="Buyers want lower prices.", degraded=True),
]


def test_format_sections_orders_and_flags_degraded():
    text = format_sections(RESULTS)

    assert text.index("### Researcher 1: Current Facts & Market Data") < text.index("### Researcher 2")
    assert "### Researcher 2: Audience & Pain-Point Analysis (reduced scope)" in text
    assert text.index("### Researcher 2") < text.index("### Researcher 3")


def test_synthesize_sends_template_and_all_sections(make_client, sleeps):
    provider = FakeProvider(lambda p, m: "# Research Report: heat pumps\n\nMerged.")
    synth = Synthesizer(make_client(provider), sleep=sleeps.append)

    document = synth.synthesize("heat pumps", "Target Audience: homeowners", RESULTS)

    assert document.startswith("# Research Report: heat pumps")
    prompt = provider.calls[0]["prompt"]
    assert "## Competitive Landscape" in prompt
    assert "Target Audience: homeowners" in prompt
    for r in RESULTS:
        assert r.text in prompt
    assert provider.calls[0]["max_tokens"] == 4000


def test_synthesize_falls_back_to_concatenation(make_client, sleeps):
    provider = FakeProvider(lambda p, m: TransportError("timeout"))
    synth = Synthesizer(make_client(provider, policy=BackoffPolicy(attempts=1)), sleep=sleeps.append)

    document = synth.synthesize("heat pumps", "", RESULTS)

    assert len(provider.calls) == 3
    assert sleeps == [4.0, 8.0]
    assert document.startswith("# Research Report: heat pumps")
    headings = ["## Current Facts & Market Data", "## Audience & Pain-Point Analysis",
                "## Competitive Landscape & Best Practices"]
    positions = [document.index(h) for h in headings]
    assert positions == sorted(positions)
    for r in RESULTS:
        assert r.text in document


def test_synthesize_unretryable_error_propagates(make_client, sleeps):
    provider = FakeProvider(lambda p, m: UnretryableServiceError("bad key", status_code=401))
    synth = Synthesizer(make_client(provider), sleep=sleeps.append)

    with pytest.raises(UnretryableServiceError):
        synth.synthesize("heat pumps", "", RESULTS)


def test_concatenate_handles_empty_section():
    doc = concatenate("x", [SubtaskResult(index=0, angle="facts", text="  ")])
    assert "_No content._" in doc
    assert "## Executive Summary" in doc
