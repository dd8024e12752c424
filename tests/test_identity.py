from place_pipeline.identity import (
    compute_source_hash,
    generate_id,
    source_hash_for,
    stamp_identity,
    synthesize_provider_id,
)
from place_pipeline.models import Coordinates, Place


def test_generate_id_is_stable_and_short() -> None:
    first = generate_id("ChIJN1t_tDeuEmsRUsoyG83frY4")
    assert first == generate_id("ChIJN1t_tDeuEmsRUsoyG83frY4")
    assert len(first) == 12
    assert all(c in "0123456789abcdef" for c in first)


def test_generate_id_differs_per_provider_id() -> None:
    ids = {generate_id(f"place-{i}") for i in range(200)}
    assert len(ids) == 200


def test_source_hash_changes_with_each_identity_field() -> None:
    base = ("Cafe", "1 Main St", 40.0, -74.0, "pid")
    reference = compute_source_hash(*base)
    assert compute_source_hash(*base) == reference

    for index, changed in enumerate(("Cafe 2", "2 Main St", 40.000001, -74.000001, "pid2")):
        args = list(base)
        args[index] = changed
        assert compute_source_hash(*args) != reference


def test_source_hash_ignores_non_identity_fields() -> None:
    place = Place(provider_id="pid", name="Cafe", address="1 Main St", coordinates=Coordinates(40.0, -74.0))
    before = source_hash_for(place)
    place.rating = 4.5
    place.user_notes = "great espresso"
    place.user_tags.append("coffee")
    assert source_hash_for(place) == before


def test_synthesized_provider_ids_are_deterministic() -> None:
    first = synthesize_provider_id("takeout_", "Joe's Pizza", "")
    assert first == synthesize_provider_id("takeout_", "Joe's Pizza", "")
    assert first.startswith("takeout_")
    assert len(first) == len("takeout_") + 16
    assert first != synthesize_provider_id("takeout_", "Joe's Pizza", "7 Carmine St")


def test_stamp_identity_sets_id_and_hash() -> None:
    place = stamp_identity(Place(provider_id="pid", name="Cafe"))
    assert place.id == generate_id("pid")
    assert place.source_hash == compute_source_hash("Cafe", "", 0.0, 0.0, "pid")
