from services.worker.tasks import resolve_facilities as task_module


def test_task_summarizes_results(monkeypatch):
    seen = []

    async def fake_resolve(facilities):
        seen.extend(facilities)
        return [
            {"decision": "matched", "facility": {"name": f.name}}
            for f in facilities
        ]

    monkeypatch.setattr(task_module, "resolve_facilities", fake_resolve)

    summary = task_module.resolve_facilities_task([
        {"name": "Valley Grande Manor", "city": "Weslaco", "state": "TX"},
        {"city": "Houston"},
    ])

    assert [f.name for f in seen] == ["Valley Grande Manor"]
    assert summary["total"] == 2
    assert summary["matched"] == 1
    assert summary["no_match"] == 0
    assert summary["rejected"][0]["index"] == 1
    assert len(summary["results"]) == 1


def test_task_with_only_invalid_facilities(monkeypatch):
    async def fake_resolve(facilities):
        raise AssertionError("nothing to resolve")

    monkeypatch.setattr(task_module, "resolve_facilities", fake_resolve)

    summary = task_module.resolve_facilities_task([{"name": ""}])

    assert summary["results"] == []
    assert len(summary["rejected"]) == 1
