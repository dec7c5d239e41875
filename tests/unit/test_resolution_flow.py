# tests/unit/test_resolution_flow.py
import asyncio

import pytest

from fakes import FakeGenerator, StaticCatalog, make_suggestion
from move_inventory.application.resolution_flow import (
    AnalyzeProductUseCase, FlowState, ResolutionFlow
)
from move_inventory.application.suggest_use_case import SuggestProductsUseCase
from move_inventory.domain.errors import (
    FlowNotFound, InvalidFlowTransition, InvalidProductInput, ProductPersistenceError
)
from move_inventory.domain.models import Product, ScanPayload

BARCODE = "4901234567894"


def _flow(store, sessions, local=None, commerce=None, ai=None):
    ai = ai or FakeGenerator()
    suggest = SuggestProductsUseCase(
        local=local or StaticCatalog(),
        open_catalog=StaticCatalog(),
        commerce=commerce or StaticCatalog(),
        ai=ai,
    )
    return ResolutionFlow(suggest=suggest, store=store, sessions=sessions, analyzer=ai)


def _scan(flow, raw, fmt="ean_13"):
    session = asyncio.run(flow.start())
    return asyncio.run(flow.scan(session.id, ScanPayload(raw_value=raw, format=fmt)))


def _search(flow, query):
    session = asyncio.run(flow.start())
    return asyncio.run(flow.search(session.id, query))


class CancellingSuggest:
    """Cancels the flow while the fan-out is still in flight."""

    def __init__(self, results):
        self.flow = None
        self.flow_id = None
        self.results = results

    async def suggest_by_name(self, query):
        await self.flow.cancel(self.flow_id)
        return self.results


def test_unknown_flow(store, sessions):
    with pytest.raises(FlowNotFound):
        asyncio.run(_flow(store, sessions).get("nope"))


def test_matrix_scan_without_candidates_keeps_printable_payload(store, sessions):
    raw = "https://example.com/items?ref=abc"
    session = _scan(_flow(store, sessions), raw, fmt="qr_code")

    assert session.state == FlowState.NO_CANDIDATES
    assert session.is_matrix_code
    assert session.printable_payload == raw
    assert sessions.data[session.id]["state"] == "no_candidates"


def test_linear_scan_without_candidates(store, sessions):
    session = _scan(_flow(store, sessions), BARCODE)
    assert session.state == FlowState.NO_CANDIDATES
    assert session.barcode_hint == BARCODE
    assert session.printable_payload is None


def test_blank_search_rejected(store, sessions):
    with pytest.raises(InvalidProductInput) as e:
        _search(_flow(store, sessions), "   ")
    assert e.value.field == "query"


def test_pick_existing_record(store, sessions):
    kettle = Product(id=3, barcode=BARCODE, name="Kettle")
    store.rows[3] = kettle
    local = StaticCatalog(by_barcode=[make_suggestion("Kettle", BARCODE, 1.0, "Local DB", existing_product_id=3)])
    flow = _flow(store, sessions, local=local)

    session = _scan(flow, BARCODE)
    assert session.state == FlowState.PRESENTING

    picked = asyncio.run(flow.pick(session.id, 0))
    assert picked.state == FlowState.RESOLVED
    assert picked.resolution.kind == "existing"
    assert picked.resolution.product.id == 3


def test_pick_matches_store_by_barcode_when_source_is_external(store, sessions):
    store.rows[5] = Product(id=5, barcode=BARCODE, name="Kettle")
    commerce = StaticCatalog(by_barcode=[make_suggestion("Electric kettle", BARCODE, 0.92)])
    flow = _flow(store, sessions, commerce=commerce)

    session = _scan(flow, BARCODE)
    picked = asyncio.run(flow.pick(session.id, 0))
    assert picked.resolution.kind == "existing"
    assert picked.resolution.product.id == 5


def test_pick_builds_draft_with_scan_barcode(store, sessions):
    commerce = StaticCatalog(by_keyword=[make_suggestion("Widget Pro", None, 0.74, reason="commerce search result")])
    flow = _flow(store, sessions, commerce=commerce)

    raw = f"https://shop.example/p/widget-pro?barcode={BARCODE}"
    session = _scan(flow, raw, fmt="qr_code")
    picked = asyncio.run(flow.pick(session.id, 0))

    draft = picked.resolution.product
    assert picked.resolution.kind == "draft"
    assert draft.id is None
    assert draft.barcode == BARCODE
    assert draft.name == "Widget Pro"
    assert draft.notes.startswith("Source: Commerce API(keyword) / commerce search result")
    assert f"Input: {raw}" in draft.notes


def test_pick_guards(store, sessions):
    flow = _flow(store, sessions, commerce=StaticCatalog(by_keyword=[make_suggestion("Mug")]))
    session = _search(flow, "mug")

    with pytest.raises(InvalidProductInput) as e:
        asyncio.run(flow.pick(session.id, 4))
    assert e.value.field == "index"

    empty = _search(_flow(store, sessions), "nothing")
    with pytest.raises(InvalidFlowTransition):
        asyncio.run(_flow(store, sessions).pick(empty.id, 0))


@pytest.mark.parametrize("raw,fmt,name,barcode", [
    (BARCODE, "ean_13", "Scanned item", BARCODE),
    ("https://example.com/items?ref=abc", "qr_code", "QR item", ""),
])
def test_manual_draft_after_scan(store, sessions, raw, fmt, name, barcode):
    flow = _flow(store, sessions)
    session = _scan(flow, raw, fmt=fmt)
    drafted = asyncio.run(flow.manual(session.id))

    assert drafted.state == FlowState.MANUAL_DRAFT
    assert drafted.resolution.kind == "manual"
    assert drafted.resolution.product.name == name
    assert drafted.resolution.product.barcode == barcode
    assert drafted.resolution.product.category == "その他"
    assert drafted.resolution.product.notes == raw


def test_manual_draft_after_name_search_uses_query(store, sessions):
    flow = _flow(store, sessions)
    session = _search(flow, "desk lamp")
    drafted = asyncio.run(flow.manual(session.id))
    assert drafted.resolution.product.name == "desk lamp"
    assert drafted.resolution.product.notes == "desk lamp"


def test_manual_draft_not_allowed_before_search(store, sessions):
    flow = _flow(store, sessions)
    session = asyncio.run(flow.start())
    with pytest.raises(InvalidFlowTransition):
        asyncio.run(flow.manual(session.id))


def test_cancel(store, sessions):
    flow = _flow(store, sessions)
    session = _scan(flow, BARCODE)

    cancelled = asyncio.run(flow.cancel(session.id))
    assert cancelled.state == FlowState.CANCELLED

    with pytest.raises(InvalidFlowTransition):
        asyncio.run(flow.cancel(session.id))
    with pytest.raises(InvalidFlowTransition):
        asyncio.run(flow.scan(session.id, ScanPayload(raw_value=BARCODE)))


def test_results_arriving_after_cancel_are_discarded(store, sessions):
    suggest = CancellingSuggest([make_suggestion("Mug")])
    flow = ResolutionFlow(suggest=suggest, store=store, sessions=sessions, analyzer=FakeGenerator())
    suggest.flow = flow
    session = asyncio.run(flow.start())
    suggest.flow_id = session.id

    out = asyncio.run(flow.search(session.id, "mug"))
    assert out.state == FlowState.CANCELLED
    assert out.suggestions == []
    assert asyncio.run(flow.get(session.id)).state == FlowState.CANCELLED


def test_confirm_manual_draft_inserts_after_analysis(store, sessions):
    ai = FakeGenerator(decision="parents_home")
    flow = _flow(store, sessions, ai=ai)
    session = _search(flow, "photo album")
    asyncio.run(flow.manual(session.id))

    edited = Product(name="  Photo album ", barcode=" 49012345 ", category="本・雑誌")
    saved = asyncio.run(flow.confirm(session.id, edited))

    assert saved.id == 1
    assert saved.name == "Photo album"
    assert saved.barcode == "49012345"
    assert saved.moving_decision == "parents_home"
    assert len(ai.analyzed) == 1
    assert store.rows[1].moving_decision == "parents_home"

    after = asyncio.run(flow.get(session.id))
    assert after.state == FlowState.SAVED
    assert after.product_id == 1
    with pytest.raises(InvalidFlowTransition):
        asyncio.run(flow.confirm(session.id, edited))


def test_confirm_skips_analysis_when_present_or_disabled(store, sessions):
    ai = FakeGenerator()
    flow = _flow(store, sessions, ai=ai)

    first = _search(flow, "mug")
    asyncio.run(flow.manual(first.id))
    analyzed = Product(name="Mug", barcode="49012345", moving_decision="discard")
    assert asyncio.run(flow.confirm(first.id, analyzed)).moving_decision == "discard"

    second = _search(flow, "cup")
    asyncio.run(flow.manual(second.id))
    plain = asyncio.run(flow.confirm(second.id, Product(name="Cup", barcode="49012346"), analyze=False))
    assert plain.moving_decision is None
    assert ai.analyzed == []


def test_confirm_validation_keeps_draft(store, sessions):
    flow = _flow(store, sessions)
    session = _search(flow, "mug")
    asyncio.run(flow.manual(session.id))

    with pytest.raises(InvalidProductInput) as e:
        asyncio.run(flow.confirm(session.id, Product(name="   ", barcode="49012345")))
    assert e.value.field == "name"

    with pytest.raises(InvalidProductInput) as e:
        asyncio.run(flow.confirm(session.id, Product(name="Mug", barcode="12ab")))
    assert e.value.field == "barcode"

    assert asyncio.run(flow.get(session.id)).state == FlowState.MANUAL_DRAFT
    assert store.inserted == []


def test_confirm_existing_record_updates(store, sessions):
    store.rows[3] = Product(id=3, barcode=BARCODE, name="Kettle")
    local = StaticCatalog(by_barcode=[make_suggestion("Kettle", BARCODE, 1.0, "Local DB", existing_product_id=3)])
    flow = _flow(store, sessions, local=local)
    session = _scan(flow, BARCODE)
    picked = asyncio.run(flow.pick(session.id, 0))

    edited = picked.resolution.product.model_copy(update={"quantity": 2})
    saved = asyncio.run(flow.confirm(session.id, edited, analyze=False))
    assert saved.id == 3
    assert store.updated[-1].quantity == 2
    assert store.inserted == []


def test_confirm_store_failures(store, sessions):
    flow = _flow(store, sessions)

    session = _search(flow, "mug")
    asyncio.run(flow.manual(session.id))
    store.fail_insert = True
    with pytest.raises(ProductPersistenceError) as e:
        asyncio.run(flow.confirm(session.id, Product(name="Mug", barcode="49012345"), analyze=False))
    assert e.value.operation == "create"
    assert asyncio.run(flow.get(session.id)).state == FlowState.MANUAL_DRAFT

    with pytest.raises(ProductPersistenceError) as e:
        asyncio.run(flow.confirm(session.id, Product(id=42, name="Mug", barcode="49012345"), analyze=False))
    assert e.value.operation == "update"

    store.fail_update = True
    store.rows[7] = Product(id=7, name="Mug", barcode="49012345")
    with pytest.raises(ProductPersistenceError) as e:
        asyncio.run(flow.confirm(session.id, Product(id=7, name="Mug", barcode="49012345"), analyze=False))
    assert e.value.operation == "update"
    assert "connection reset" in str(e.value)


def test_analyze_stored_product(store):
    ai = FakeGenerator(decision="sell")
    uc = AnalyzeProductUseCase(store, ai)
    assert asyncio.run(uc.execute(9)) is None

    store.rows[9] = Product(id=9, name="Old console", barcode="49012345")
    out = asyncio.run(uc.execute(9))
    assert out.moving_decision == "sell"
    assert store.rows[9].moving_decision == "sell"


class BrokenSuggest:
    async def suggest_by_name(self, query):
        raise KeyError("product_name")


def test_failed_fan_out_ends_without_candidates(store, sessions):
    flow = ResolutionFlow(suggest=BrokenSuggest(), store=store, sessions=sessions, analyzer=FakeGenerator())
    session = _search(flow, "mug")
    assert session.state == FlowState.NO_CANDIDATES

    drafted = asyncio.run(flow.manual(session.id))
    assert drafted.state == FlowState.MANUAL_DRAFT


def test_batch_analysis_covers_only_unanalyzed(store):
    store.rows[1] = Product(id=1, name="Rice cooker", barcode="49012345", moving_decision="keep")
    store.rows[2] = Product(id=2, name="Old comic", barcode="49012346")
    store.rows[3] = Product(id=3, name="Photo album", barcode="49012347")
    ai = FakeGenerator(decision="sell")
    uc = AnalyzeProductUseCase(store, ai, pause_s=0)

    done = asyncio.run(uc.execute_all())
    assert [p.id for p in done] == [2, 3]
    assert [p.name for p in ai.analyzed] == ["Old comic", "Photo album"]
    assert store.rows[1].moving_decision == "keep"
    assert asyncio.run(uc.execute_all()) == []


def test_batch_analysis_stops_on_store_failure(store):
    store.rows[2] = Product(id=2, name="Old comic", barcode="49012346")
    store.fail_update = True
    with pytest.raises(ProductPersistenceError) as e:
        asyncio.run(AnalyzeProductUseCase(store, FakeGenerator(), pause_s=0).execute_all())
    assert e.value.operation == "update"
