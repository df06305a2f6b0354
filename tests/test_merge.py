"""Tests for natural-key and id-keyed merging."""

from jobflow.merge import merge_by_id_newest, merge_by_id_replace, merge_by_natural_key, url_of


def test_existing_wins_and_order_is_kept():
    existing = [{"id": "1", "url": "a", "title": "old"}]
    incoming = [{"id": "2", "url": "a", "title": "new"}, {"id": "3", "url": "b"}]

    result = merge_by_natural_key(existing, incoming, url_of)

    assert result.merged == [{"id": "1", "url": "a", "title": "old"}, {"id": "3", "url": "b"}]
    assert result.inserted_count == 1
    assert result.skipped_count == 1
    assert existing == [{"id": "1", "url": "a", "title": "old"}]


def test_duplicates_within_incoming_are_all_kept():
    incoming = [{"url": "x", "n": 1}, {"url": "x", "n": 2}, {"url": "y"}]
    result = merge_by_natural_key([], incoming, url_of)
    assert [r.get("n") for r in result.merged] == [1, 2, None]
    assert (result.inserted_count, result.skipped_count) == (3, 0)


def test_incoming_duplicates_of_an_existing_key_are_all_skipped():
    incoming = [{"url": "x", "n": 1}, {"url": "x", "n": 2}]
    result = merge_by_natural_key([{"url": "x", "n": 0}], incoming, url_of)
    assert result.merged == [{"url": "x", "n": 0}]
    assert (result.inserted_count, result.skipped_count) == (0, 2)


def test_remerge_inserts_nothing():
    incoming = [{"url": "a"}, {"url": "b"}]
    first = merge_by_natural_key([], incoming, url_of)
    second = merge_by_natural_key(first.merged, incoming, url_of)
    assert second.merged == first.merged
    assert (second.inserted_count, second.skipped_count) == (0, 2)


def test_keys_are_compared_exactly():
    result = merge_by_natural_key([{"url": "https://a.com/"}], [{"url": "https://a.com"}], url_of)
    assert result.inserted_count == 1


def test_id_merge_prefers_newer():
    existing = [{"id": "1", "dateModified": 10, "v": "old"}, {"id": "2", "dateModified": 10}]
    incoming = [
        {"id": "1", "dateModified": 20, "v": "new"},
        {"id": "2", "dateModified": 5},
        {"id": "3", "dateModified": 1},
    ]
    result = merge_by_id_newest(existing, incoming)
    assert [r["id"] for r in result.merged] == ["1", "2", "3"]
    assert result.merged[0]["v"] == "new"
    assert result.merged[1]["dateModified"] == 10
    assert (result.inserted_count, result.skipped_count) == (1, 1)


def test_id_merge_replace_always_takes_incoming():
    result = merge_by_id_replace([{"id": "c", "name": "old"}], [{"id": "c", "name": "new"}])
    assert result.merged == [{"id": "c", "name": "new"}]
