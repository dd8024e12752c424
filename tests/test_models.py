from datetime import datetime

from place_pipeline.models import Coordinates, Photo, Place, Review


def test_zero_coordinates_are_unset() -> None:
    assert not Coordinates().is_set
    assert Coordinates(0.0, 12.5).is_set
    assert Coordinates(51.5, 0.0).is_set


def test_identity_requires_name_address_or_coordinates() -> None:
    assert not Place().has_identity
    assert Place(name="Somewhere").has_identity
    assert Place(address="1 Main St").has_identity
    assert Place(coordinates=Coordinates(1.0, 2.0)).has_identity


def test_tags_and_categories_stay_unique() -> None:
    place = Place(categories=["Cafe", "Cafe", "Bar"], user_tags=["a", "a"])
    assert place.categories == ["Cafe", "Bar"]
    assert place.user_tags == ["a"]

    assert place.add_tag("b")
    assert not place.add_tag("b")
    assert place.remove_tag("a")
    assert not place.remove_tag("a")
    assert place.user_tags == ["b"]
    assert not place.add_category("Cafe")
    assert place.add_category("Bakery")


def test_dict_form_carries_nested_values() -> None:
    place = Place(
        id="abc123def456",
        provider_id="pid",
        name="Cafe",
        coordinates=Coordinates(40.7128, -74.006),
        photos=[Photo(reference="ph1", width=400, height=300)],
        reviews=[Review(author="Ann", rating=5, text="Great", time=datetime(2024, 3, 1, 12, 0))],
        custom_fields={"visited": True, "score": 8.5, "with": ["Bo", "Cy"]},
        created_at=datetime(2024, 1, 1),
    )
    data = place.to_dict()
    assert data["coordinates"] == {"lat": 40.7128, "lng": -74.006}
    assert data["reviews"][0]["time"] == "2024-03-01T12:00:00"
    assert data["created_at"] == "2024-01-01T00:00:00"

    restored = Place.from_dict(data)
    assert restored == place


def test_from_dict_normalizes_aware_timestamps_to_utc() -> None:
    place = Place.from_dict({"name": "Cafe", "updated_at": "2024-05-01T12:00:00+02:00"})
    assert place.updated_at == datetime(2024, 5, 1, 10, 0)
