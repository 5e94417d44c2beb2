"""Test batch summarization, response parsing and the local fallback."""
import asyncio
import json
import pytest
from unittest.mock import AsyncMock, MagicMock

from feedback_radar.agents.summarizer_agent import (
    SummarizerAgent,
    build_batch_prompt,
    fallback_summary,
    parse_summary_response,
)
from feedback_radar.models.summary import MalformedResponse, ParsedSummaries
from feedback_radar.utils.llm_client import LLMClient
from tests.fixtures.feedback import NOW, BrokenLLMClient, EchoLLMClient, make_raw_item


def items(count: int):
    return [make_raw_item(f"p{i}", NOW) for i in range(count)]


def agent(llm, **overrides):
    options = dict(batch_size=10, batch_delay=0.0, max_items=400, concurrency=5, fallback_chars=500)
    options.update(overrides)
    return SummarizerAgent(llm, **options)


class TestParseSummaryResponse:

    def test_plain_array(self):
        text = json.dumps([
            {"id": "a", "summary": "Export crashes.", "key_points": ["Fix export"], "sentiment": "negative"},
            {"id": "b", "summary": "Loves dark mode.", "key_points": [], "sentiment": "positive"},
        ])
        outcome = parse_summary_response(text, ["a", "b"])

        assert isinstance(outcome, ParsedSummaries)
        assert outcome.summaries["a"].key_points == ["Fix export"]
        assert outcome.summaries["b"].sentiment == "positive"
        assert all(s.provenance == "model" for s in outcome.summaries.values())

    def test_code_fences_and_prose(self):
        text = "Sure! Here you go:\n```json\n[{\"id\": \"a\", \"summary\": \"Slow sync.\"}]\n```\nHope this helps."
        outcome = parse_summary_response(text, ["a"])
        assert isinstance(outcome, ParsedSummaries)
        assert outcome.summaries["a"].summary == "Slow sync."

    def test_wrapped_object_and_post_id(self):
        text = json.dumps({"summaries": [{"post_id": "a", "summary": "Pricing is confusing."}]})
        outcome = parse_summary_response(text, ["a"])
        assert isinstance(outcome, ParsedSummaries)
        assert "a" in outcome.summaries

    def test_unknown_sentiment_and_too_many_points(self):
        text = json.dumps([{
            "id": "a", "summary": "Many asks.",
            "key_points": [f"point {i}" for i in range(9)],
            "sentiment": "furious",
        }])
        summary = parse_summary_response(text, ["a"]).summaries["a"]
        assert summary.sentiment == "neutral"
        assert len(summary.key_points) == 6

    def test_ignores_foreign_and_incomplete_entries(self):
        text = json.dumps([
            {"id": "zzz", "summary": "Not in this batch."},
            {"id": "a"},
            {"id": "b", "summary": "Valid."},
            "garbage",
        ])
        outcome = parse_summary_response(text, ["a", "b"])
        assert isinstance(outcome, ParsedSummaries)
        assert list(outcome.summaries) == ["b"]

    @pytest.mark.parametrize("text", [
        "",
        "I cannot help with that.",
        "{\"id\": \"a\", \"summary\": \"not an array\"}",
        "[1, 2, 3]",
        "[{\"id\": \"other\", \"summary\": \"x\"}]",
    ])
    def test_malformed(self, text):
        assert isinstance(parse_summary_response(text, ["a"]), MalformedResponse)


class TestFallbackSummary:

    def test_short_post_kept_whole(self):
        item = make_raw_item("a", NOW, title="Dark mode please", body="Eyes hurt at night.")
        summary = fallback_summary(item, 500)

        assert summary.summary == "Dark mode please\n\nEyes hurt at night."
        assert summary.key_points == ["Dark mode please"]
        assert summary.sentiment == "neutral"
        assert summary.provenance == "fallback"

    def test_long_post_truncated_with_ellipsis(self):
        item = make_raw_item("a", NOW, title="Long", body="x" * 2000)
        summary = fallback_summary(item, 500)
        assert len(summary.summary) == 503
        assert summary.summary.endswith("...")


class TestBuildBatchPrompt:

    def test_tags_every_post_with_its_id(self):
        prompt = build_batch_prompt([make_raw_item("abc", NOW), make_raw_item("def", NOW)])
        assert "(ID: abc)" in prompt
        assert "(ID: def)" in prompt
        assert prompt.index("(ID: abc)") < prompt.index("(ID: def)")


@pytest.mark.asyncio
class TestSummarizerAgent:

    async def test_one_call_per_batch(self):
        llm = EchoLLMClient()
        result = await agent(llm, batch_size=10).run(items(25))

        assert llm.calls == 3
        assert result.model_count == 25
        assert result.fallback_count == 0
        assert result.cap_hit is False

    async def test_preserves_item_order(self):
        posts = items(23)
        result = await agent(EchoLLMClient(), batch_size=5).run(posts)
        assert list(result.summaries) == [p.external_id for p in posts]

    async def test_model_failure_falls_back_per_item(self):
        result = await agent(BrokenLLMClient()).run(items(12))

        assert result.model_count == 0
        assert result.fallback_count == 12
        assert result.failed_batches == 2
        assert all(s.provenance == "fallback" for s in result.summaries.values())

    async def test_unparsable_reply_falls_back(self):
        llm = MagicMock(spec=LLMClient)
        llm.complete = AsyncMock(return_value="Sorry, I can't produce JSON today.")

        result = await agent(llm).run(items(3))
        assert result.fallback_count == 3
        assert result.failed_batches == 1

    @pytest.mark.parametrize("reply", [
        "[" + "1" * 5000 + "]",
        "[" * 100000 + "]" * 100000,
    ], ids=["huge-integer", "deep-nesting"])
    async def test_undecodable_json_falls_back(self, reply):
        assert isinstance(parse_summary_response(reply, ["p0"]), MalformedResponse)

        llm = MagicMock(spec=LLMClient)
        llm.complete = AsyncMock(return_value=reply)

        result = await agent(llm).run(items(1))
        assert result.fallback_count == 1
        assert result.failed_batches == 1

    async def test_summarize_returns_summary_per_id(self):
        posts = items(12)
        llm = MagicMock(spec=LLMClient)
        llm.complete = AsyncMock(return_value=json.dumps([{"id": "p3", "summary": "Export is broken."}]))

        summaries = await agent(llm, batch_size=10).summarize(posts)

        assert list(summaries) == [p.external_id for p in posts]
        assert summaries["p3"].summary == "Export is broken."
        assert summaries["p3"].provenance == "model"
        assert summaries["p0"].provenance == "fallback"
        assert llm.complete.await_count == 2

    async def test_partial_reply_only_missing_items_fall_back(self):
        llm = MagicMock(spec=LLMClient)
        llm.complete = AsyncMock(return_value=json.dumps([{"id": "p0", "summary": "Only the first."}]))

        result = await agent(llm).run(items(3))
        assert result.summaries["p0"].provenance == "model"
        assert result.summaries["p1"].provenance == "fallback"
        assert result.summaries["p2"].provenance == "fallback"
        assert result.failed_batches == 0

    async def test_cap_items_never_reach_the_model(self):
        llm = EchoLLMClient()
        result = await agent(llm, batch_size=10, max_items=20).run(items(35))

        assert llm.calls == 2
        assert result.cap_hit is True
        assert result.capped_items == 15
        assert result.model_count == 20
        assert result.fallback_count == 15
        assert result.summaries["p34"].provenance == "fallback"

    async def test_delay_between_batches(self):
        sleep = AsyncMock()
        await agent(EchoLLMClient(), batch_size=10, batch_delay=1.0, concurrency=1, sleep=sleep).run(items(30))
        # No pause after the last batch
        assert sleep.await_count == 2
        assert all(c.args[0] == 1.0 for c in sleep.await_args_list)

    async def test_concurrency_is_bounded(self):
        active = 0
        peak = 0

        class SlowLLM(EchoLLMClient):
            async def complete(self, prompt, system_prompt=None, temperature=None):
                nonlocal active, peak
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.01)
                active -= 1
                return await super().complete(prompt, system_prompt, temperature)

        await agent(SlowLLM(), batch_size=1, concurrency=2).run(items(6))
        assert peak <= 2

    async def test_cancelled_before_start(self):
        cancel = asyncio.Event()
        cancel.set()
        llm = EchoLLMClient()

        result = await agent(llm).run(items(5), cancel_event=cancel)
        assert llm.calls == 0
        assert result.fallback_count == 5

    async def test_empty_input(self):
        llm = EchoLLMClient()
        result = await agent(llm).run([])
        assert result.summaries == {}
        assert llm.calls == 0
