import pytest

from jobflow.store import MemoryStore


def legacy_record(url: str, **overrides) -> dict:
    """Helper: a generation-1 application as an old release stored it."""
    record = {
        "id": f"v1-{url}",
        "url": url,
        "company": "Acme",
        "title": "Engineer",
        "location": "Remote",
        "description": "Build things.",
        "status": "applied",
        "interest": 4,
        "tags": ["python"],
        "notes": "",
        "dateAdded": "2024-01-15T10:00:00Z",
    }
    record.update(overrides)
    return record


@pytest.fixture
def store():
    return MemoryStore()
