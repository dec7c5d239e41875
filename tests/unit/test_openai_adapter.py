# tests/unit/test_openai_adapter.py
import asyncio
from types import SimpleNamespace

from move_inventory.config import Settings
from move_inventory.domain.models import Product
from move_inventory.infra.llm.openai_adapter import (
    OpenAICandidateGenerator, is_model_unavailable, parse_analysis, parse_suggestions
)
from move_inventory.services.prompt_service import PromptService


class FakeCompletions:
    def __init__(self, replies):
        # reply is either a string (content) or an exception to raise
        self.replies = list(replies)
        self.models = []

    async def create(self, *, model, messages, **kw):
        self.models.append(model)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=reply))])


def _fake_client(*replies):
    completions = FakeCompletions(replies)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


def _gen(client=None, **kw):
    base = dict(openai_api_key="sk-test", llm_model="gpt-4o-mini")
    base.update(kw)
    return OpenAICandidateGenerator(Settings(**base), client=client)


def test_no_key_returns_rule_fallback_without_network():
    client, completions = _fake_client()
    gen = _gen(client, openai_api_key="")

    with_code = asyncio.run(gen.suggest("4901234567894", barcode_hint="4901234567894", name_hint="Mug"))
    assert [s.confidence for s in with_code] == [0.82, 0.74]
    assert all(s.source == "AI estimate (rules)" for s in with_code)

    without = asyncio.run(gen.suggest("blue mug", name_hint="Mug"))
    assert [s.confidence for s in without] == [0.66, 0.58]
    assert completions.models == []


def test_suggest_parses_model_answer():
    reply = (
        "Here you go:\n"
        '[{"name": "Drip Coffee", "barcode": "4901-2345-6789-4", "category": "食品・飲料", "confidence": 0.7},'
        ' {"name": "", "confidence": 0.9},'
        ' {"name": "Coffee Mug", "category": "unknown", "description": "ceramic coffee mug", "confidence": 1.4},'
        ' {"name": "Filter", "barcode": "12"}]\nThanks'
    )
    client, _ = _fake_client(reply)
    out = asyncio.run(_gen(client).suggest("coffee", max_results=8))

    assert [s.name for s in out] == ["Coffee Mug", "Drip Coffee", "Filter"]
    assert out[0].confidence == 1.0
    assert out[0].category == "食品・飲料"
    assert out[1].barcode == "4901234567894"
    assert out[2].barcode is None and out[2].confidence == 0.55
    assert all(s.source == "AI estimate" for s in out)


def test_suggest_truncates_to_max_results():
    reply = '[{"name": "A", "confidence": 0.9}, {"name": "B", "confidence": 0.8}, {"name": "C", "confidence": 0.7}]'
    client, _ = _fake_client(reply)
    assert [s.name for s in asyncio.run(_gen(client).suggest("x", max_results=2))] == ["A", "B"]


def test_suggest_unparseable_answer_uses_heuristic_fallback():
    client, _ = _fake_client("sorry, I cannot help")
    out = asyncio.run(_gen(client).suggest("blue mug"))
    assert len(out) == 1
    assert out[0].source == "AI estimate (heuristic)"


def test_model_fallback_walks_candidates_on_not_found():
    client, completions = _fake_client(
        RuntimeError("The model `gpt-4o-mini` does not exist"),
        RuntimeError("unsupported model"),
        '[{"name": "Lamp", "confidence": 0.6}]',
    )
    out = asyncio.run(_gen(client).suggest("lamp"))
    assert out[0].name == "Lamp"
    assert completions.models == ["gpt-4o-mini", "gpt-4.1-mini", "gpt-4o"]


def test_other_errors_stop_model_walk():
    client, completions = _fake_client(RuntimeError("rate limited"))
    out = asyncio.run(_gen(client).suggest("lamp"))
    assert completions.models == ["gpt-4o-mini"]
    assert out[0].source == "AI estimate (heuristic)"


def test_candidate_models_dedup():
    gen = _gen(llm_model="gpt-4o", llm_fallback_models=["gpt-4o", " ", "gpt-3.5-turbo"])
    assert gen.candidate_models() == ["gpt-4o", "gpt-3.5-turbo"]


def test_is_model_unavailable():
    assert is_model_unavailable(RuntimeError("model foo not found"))
    assert not is_model_unavailable(RuntimeError("connection reset"))


def test_analyze_parses_object():
    client, _ = _fake_client('{"movingDecision": "sell", "storageLocation": "", "confidence": "0.9"}')
    out = asyncio.run(_gen(client).analyze(Product(name="Old comic", barcode="49012345")))
    assert out.moving_decision == "sell"
    assert out.storage_location == "その他"
    assert out.ai_confidence == 0.9
    assert out.analysis_notes == "AI analysis"


def test_analyze_falls_back_to_rules():
    product = Product(name="卒業アルバム", barcode="49012345")

    no_key = asyncio.run(_gen(openai_api_key="").analyze(product))
    assert no_key.moving_decision == "parents_home"
    assert "No OpenAI API key" in no_key.analysis_notes

    client, _ = _fake_client(RuntimeError("timeout"))
    failed = asyncio.run(_gen(client).analyze(product))
    assert failed.storage_location == "実家"
    assert "call failed" in failed.analysis_notes

    client, _ = _fake_client('{"movingDecision": "throw away"}')
    bad = asyncio.run(_gen(client).analyze(product))
    assert bad.ai_confidence == 0.86
    assert "parse" in bad.analysis_notes


def test_parsers_ignore_non_json():
    assert parse_suggestions("[not json]") == []
    assert parse_analysis("{oops}") is None
    assert parse_analysis("no braces") is None


def test_connection_test():
    assert not asyncio.run(_gen(openai_api_key="").test_connection()).success

    client, _ = _fake_client("OK")
    assert asyncio.run(_gen(client).test_connection()).success

    client, _ = _fake_client("")
    assert not asyncio.run(_gen(client).test_connection()).success


def test_broken_custom_prompt_degrades_to_heuristic(tmp_path):
    path = tmp_path / "prompts.yaml"
    path.write_text('suggest: "Find {product_name} please"\n', encoding="utf-8")
    client, completions = _fake_client()
    gen = OpenAICandidateGenerator(
        Settings(openai_api_key="sk-test"), client=client, prompts=PromptService(path)
    )

    out = asyncio.run(gen.suggest("blue mug"))
    assert out[0].source == "AI estimate (heuristic)"
    assert completions.models == []


def test_non_finite_model_confidence_uses_default():
    reply = '[{"name": "A", "confidence": NaN}, {"name": "B", "confidence": "nan"}, {"name": "C", "confidence": 0.6}]'
    client, _ = _fake_client(reply)
    out = asyncio.run(_gen(client).suggest("x", max_results=8))
    assert [(s.name, s.confidence) for s in out] == [("C", 0.6), ("A", 0.55), ("B", 0.55)]

    client, _ = _fake_client('{"movingDecision": "keep", "confidence": NaN}')
    analyzed = asyncio.run(_gen(client).analyze(Product(name="Lamp")))
    assert analyzed.ai_confidence == 0.7
