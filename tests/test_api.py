import httpx
import pytest
import pytest_asyncio

from apps.api import dependencies
from apps.api.main import app
from apps.api.routers import providers as providers_router
from dealcore.common.database import get_db_session
from dealcore.domain.coa.learned_mappings import LearnedMappingStore
from dealcore.domain.coa.match_orchestrator import MatchOrchestrator
from dealcore.domain.coa.taxonomy_matcher import TaxonomyMatcher
from dealcore.domain.entity_resolution.provider_matcher import ProviderMatcher
from dealcore.integrations.cms.registry_cache import RegistryCache


@pytest_asyncio.fixture
async def client(session_factory, registry_client, settings, clock, thresholds):
    """API client with the registry faked and an in-memory database"""
    cache = RegistryCache(registry_client, settings=settings, clock=clock)
    store = LearnedMappingStore(thresholds)
    orchestrator = MatchOrchestrator(TaxonomyMatcher(thresholds), store, thresholds)

    async def override_db_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_db_session
    app.dependency_overrides[dependencies.get_registry_cache] = lambda: cache
    app.dependency_overrides[dependencies.get_provider_matcher] = lambda: ProviderMatcher(cache)
    app.dependency_overrides[dependencies.get_learned_store] = lambda: store
    app.dependency_overrides[dependencies.get_match_orchestrator] = lambda: orchestrator

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


VALLEY_GRANDE = {"name": "Valley Grande Manor", "city": "Weslaco", "state": "TX", "licensed_beds": 147}


class TestProvidersAPI:

    @pytest.mark.asyncio
    async def test_match_facility(self, client):
        response = await client.post("/api/v1/providers/match", json=VALLEY_GRANDE)

        assert response.status_code == 200
        body = response.json()
        assert body["decision"] == "matched"
        assert body["provider"]["ccn"] == "455678"
        assert body["auto_verified"] is True

    @pytest.mark.asyncio
    async def test_match_requires_name(self, client):
        response = await client.post("/api/v1/providers/match", json={"city": "Weslaco"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_match_with_unparseable_beds(self, client):
        response = await client.post("/api/v1/providers/match", json={**VALLEY_GRANDE, "licensed_beds": "N/A"})

        assert response.status_code == 200
        assert response.json()["decision"] == "matched"

    @pytest.mark.asyncio
    async def test_match_batch(self, client):
        response = await client.post("/api/v1/providers/match/batch", json=[
            VALLEY_GRANDE,
            {"name": "Zzyzx Gardens", "state": "CA"},
        ])

        assert response.status_code == 200
        assert [r["decision"] for r in response.json()] == ["matched", "no_match"]

    @pytest.mark.asyncio
    async def test_empty_batch_rejected(self, client):
        response = await client.post("/api/v1/providers/match/batch", json=[])
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_oversized_batch_rejected(self, client):
        response = await client.post(
            "/api/v1/providers/match/batch",
            json=[VALLEY_GRANDE] * (providers_router.MAX_BATCH_SIZE + 1),
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_match_async_queues_task(self, client, monkeypatch):
        queued = []

        def fake_queue(facilities):
            queued.append(facilities)
            return "task-123"

        monkeypatch.setattr(providers_router, "queue_facility_resolution", fake_queue)

        response = await client.post("/api/v1/providers/match/async", json=[VALLEY_GRANDE])

        assert response.status_code == 202
        assert response.json() == {"task_id": "task-123", "facilities": 1, "status": "queued"}
        assert queued[0][0]["name"] == "Valley Grande Manor"

    @pytest.mark.asyncio
    async def test_search(self, client):
        response = await client.get("/api/v1/providers/search", params={"name": "Valley Grande", "state": "TX"})

        assert response.status_code == 200
        assert [p["ccn"] for p in response.json()] == ["455678"]

    @pytest.mark.asyncio
    async def test_search_validates_state(self, client):
        response = await client.get("/api/v1/providers/search", params={"name": "Valley Grande", "state": "Texas"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_get_provider(self, client):
        found = await client.get("/api/v1/providers/455678")
        missing = await client.get("/api/v1/providers/999999")

        assert found.status_code == 200
        assert found.json()["number_of_beds"] == 147
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_get_provider_profile(self, client):
        response = await client.get("/api/v1/providers/455678/profile")

        assert response.status_code == 200
        body = response.json()
        assert body["provider"]["ccn"] == "455678"
        assert body["penalties"] == []


class TestCOAMappingsAPI:

    @pytest.mark.asyncio
    async def test_list_accounts(self, client):
        postable = (await client.get("/api/v1/coa/accounts")).json()
        everything = (await client.get("/api/v1/coa/accounts", params={"include_headers": True})).json()

        assert all(not a["is_header"] for a in postable)
        assert len(everything) > len(postable)

    @pytest.mark.asyncio
    async def test_confirm_then_map(self, client):
        confirmation = {
            "source_label": "MCAID RM&B",
            "coa_code": "4110",
            "coa_name": "Medicaid Room & Board",
            "deal_id": "D1",
            "reviewed_by": "analyst@example.com",
        }
        response = await client.post("/api/v1/coa/confirmations", json=confirmation)
        assert response.status_code == 201
        assert response.json()["global_outcome"] == "created"

        response = await client.post("/api/v1/coa/deals/D1/map", json={
            "source": "T12.xlsx",
            "line_items": [
                {"label": "MCAID RM&B", "values": [{"month": "Jan '24", "value": 1000.0}], "confidence": 0.9},
                {"label": "Lab Fees"},
            ],
        })
        assert response.status_code == 200
        batch = response.json()
        assert batch["mappings"][0]["mapping_method"] == "learned"
        assert batch["mappings"][0]["coa_code"] == "4110"
        assert batch["unmapped"][0]["source_label"] == "Lab Fees"

        stats = (await client.get("/api/v1/coa/deals/D1/stats")).json()
        assert stats["manual"] == 1
        assert stats["unmapped"] == 1

        labels = (await client.get("/api/v1/coa/unmapped-labels")).json()
        assert labels == [{"source_label": "Lab Fees", "count": 1}]

    @pytest.mark.asyncio
    async def test_confirmation_with_header_code_rejected(self, client):
        response = await client.post("/api/v1/coa/confirmations", json={
            "source_label": "Revenue",
            "coa_code": "4000",
            "coa_name": "Revenue",
        })
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_batch_with_invalid_entry_rejected_whole(self, client):
        response = await client.post("/api/v1/coa/confirmations/batch", json=[
            {"source_label": "RN Salary", "coa_code": "5210", "coa_name": "RN Wages", "deal_id": "D1"},
            {"source_label": "Revenue", "coa_code": "4000", "coa_name": "Revenue", "deal_id": "D1"},
        ])

        assert response.status_code == 400
        assert "Confirmation 1" in response.json()["detail"]
        assert (await client.get("/api/v1/coa/suggestions", params={"label": "RN Salary"})).json() == []

    @pytest.mark.asyncio
    async def test_batch_confirmations_and_suggestions(self, client):
        response = await client.post("/api/v1/coa/confirmations/batch", json=[
            {"source_label": "RN Salary", "coa_code": "5210", "coa_name": "RN Wages", "deal_id": "D1"},
            {"source_label": "RN Salary", "coa_code": "5210", "coa_name": "RN Wages", "deal_id": "D2"},
        ])
        assert response.status_code == 201
        assert [o["global_outcome"] for o in response.json()] == ["created", "reinforced"]

        suggestions = (await client.get("/api/v1/coa/suggestions", params={"label": "RN Salary"})).json()
        assert suggestions[0]["coa_code"] == "5210"
        assert suggestions[0]["scope"] == "global"

        in_deal = (await client.get("/api/v1/coa/suggestions", params={"label": "RN Salary", "deal_id": "D1"})).json()
        assert in_deal[0]["scope"] == "deal"

    @pytest.mark.asyncio
    async def test_export_and_purge(self, client):
        await client.post("/api/v1/coa/confirmations", json={
            "source_label": "MCAID RM&B", "coa_code": "4110", "coa_name": "Medicaid Room & Board", "deal_id": "D1",
        })

        export = (await client.get("/api/v1/coa/export")).json()
        assert export["global_mappings"][0]["normalized_label"] == "mcaid_rmb"
        assert list(export["per_deal"]) == ["D1"]

        assert (await client.delete("/api/v1/coa/global/mcaid_rmb")).json() == {"removed": 1}
        assert (await client.delete("/api/v1/coa/global/mcaid_rmb")).status_code == 404
        assert (await client.delete("/api/v1/coa/deals/D1/mappings")).json() == {"removed": 1}

    @pytest.mark.asyncio
    async def test_proforma_and_unmapped_summary(self, client):
        proforma = await client.post("/api/v1/coa/proforma", json=[
            {"coa_code": "5210", "coa_name": "RN Wages", "source_label": "RN Wages",
             "monthly_values": {"Jan '24": 100.0}, "confidence": 0.9, "mapping_method": "exact"},
            {"coa_code": "5210", "coa_name": "RN Wages", "source_label": "RN Overtime",
             "monthly_values": {"Jan '24": 25.0}, "confidence": 0.75, "mapping_method": "fuzzy"},
        ])
        assert proforma.json() == {"5210": {"Jan '24": 125.0}}

        summary = await client.post("/api/v1/coa/unmapped-summary", json=[
            {"source_label": "Lab Fees", "label": "Lab Fees"},
        ])
        assert summary.json() == [{"category": "Other", "count": 1, "examples": ["Lab Fees"]}]


class TestSystemEndpoints:

    @pytest.mark.asyncio
    async def test_root(self, client):
        response = await client.get("/")
        assert response.json()["name"] == "SNF Deal Engine API"

    @pytest.mark.asyncio
    async def test_metrics(self, client):
        response = await client.get("/metrics")
        assert response.status_code == 200
        assert "coa_line_item_mappings_total" in response.text
