from __future__ import annotations

import json
import zipfile
from pathlib import Path

import pytest

from place_pipeline.errors import SourceError, UnsupportedFormatError
from place_pipeline.sources.google_takeout import GoogleTakeoutSource, extract_from_maps_url


def _write_json(path: Path, payload: object) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload), encoding="utf-8")


def _feature(coordinates: list[float], **properties) -> dict:
    return {"type": "Feature", "geometry": {"type": "Point", "coordinates": coordinates}, "properties": properties}


def test_feature_swaps_geojson_order_and_synthesizes_provider_id() -> None:
    payload = {"type": "FeatureCollection", "features": [_feature([-74.0060, 40.7128], name="Joe's Pizza")]}
    places = GoogleTakeoutSource().import_from_data(json.dumps(payload).encode(), "json")

    assert len(places) == 1
    place = places[0]
    assert place.coordinates.lat == 40.7128
    assert place.coordinates.lng == -74.0060
    assert place.provider_id.startswith("takeout_")
    assert len(place.id) == 12
    assert place.custom_fields["imported_from"] == "takeout"
    assert "import_date" in place.custom_fields
    assert place.imported_at is not None


def test_feature_without_identity_is_dropped() -> None:
    payload = {"features": [_feature([0, 0], name="", address="")]}
    assert GoogleTakeoutSource().import_from_data(json.dumps(payload).encode(), "json") == []


def test_empty_feature_collection_is_not_an_error() -> None:
    assert GoogleTakeoutSource().import_from_data(b'{"type": "FeatureCollection", "features": []}', "json") == []


def test_nested_location_shape_and_place_id() -> None:
    payload = {
        "features": [
            _feature(
                [2.2945, 48.8584],
                place_id="ChIJLU7jZClu5kcR4PcOOO6p3I0",
                location={"name": "Eiffel Tower", "address": "Champ de Mars, Paris", "country_code": "FR"},
                google_maps_url="https://maps.google.com/?cid=123",
                date="2023-06-01T10:00:00Z",
                categories=["Tourist attraction"],
                rating=4.7,
                review_count="1200",
                hours={"monday": "9-23"},
                description="Go at sunset",
            )
        ]
    }
    place = GoogleTakeoutSource().import_from_data(json.dumps(payload).encode(), "json")[0]
    assert place.provider_id == "ChIJLU7jZClu5kcR4PcOOO6p3I0"
    assert place.name == "Eiffel Tower"
    assert place.address == "Champ de Mars, Paris"
    assert place.categories == ["Tourist attraction"]
    assert place.rating == 4.7
    assert place.rating_count == 1200
    assert json.loads(place.hours) == {"monday": "9-23"}
    assert place.user_notes == "Go at sunset"
    assert place.custom_fields["country_code"] == "FR"
    assert place.custom_fields["saved_date"] == "2023-06-01T10:00:00Z"
    assert place.custom_fields["google_maps_url"] == "https://maps.google.com/?cid=123"


def test_url_fallback_for_unnamed_features() -> None:
    payload = {
        "features": [
            _feature([0, 0], google_maps_url="http://maps.google.com/?q=40.7580,-73.9855"),
            _feature([0, 0], google_maps_url="https://www.google.com/maps?q=Blue%20Bottle%20Coffee"),
        ]
    }
    coords_place, named_place = GoogleTakeoutSource().import_from_data(json.dumps(payload).encode(), "json")
    assert coords_place.name == "Saved Place (40.758000, -73.985500)"
    assert coords_place.coordinates.lat == 40.758
    assert named_place.name == "Blue Bottle Coffee"


def test_extract_from_maps_url() -> None:
    assert extract_from_maps_url("https://maps.google.com/?q=-33.8688,151.2093") == (-33.8688, 151.2093, "")
    assert extract_from_maps_url("https://maps.google.com/?cid=42") == (0.0, 0.0, "")
    assert extract_from_maps_url("") == (0.0, 0.0, "")
    assert extract_from_maps_url("https://maps.google.com/?q=Tartine+Bakery")[2] == "Tartine Bakery"


def test_saved_lists_tag_places_with_list_name() -> None:
    payload = {
        "lists": [
            {
                "name": "Want to go",
                "places": [
                    {
                        "name": "Tartine",
                        "address": "600 Guerrero St",
                        "coordinates": {"latitude": 37.7614, "longitude": -122.4241},
                        "note": "morning bun",
                        "added_at": "2024-02-02",
                    },
                    {"name": "", "address": ""},
                ],
            }
        ]
    }
    places = GoogleTakeoutSource().import_from_data(json.dumps(payload).encode(), "json")
    assert len(places) == 1
    place = places[0]
    assert place.provider_id.startswith("saved_")
    assert place.user_tags == ["Want to go"]
    assert place.user_notes == "morning bun"
    assert place.custom_fields["original_list"] == "Want to go"
    assert place.custom_fields["imported_from"] == "takeout_saved"


def test_malformed_entry_is_skipped_not_fatal() -> None:
    payload = {"features": ["not an object", {"geometry": {"coordinates": "bad"}, "properties": {"name": "Still here"}}]}
    places = GoogleTakeoutSource().import_from_data(json.dumps(payload).encode(), "json")
    assert [place.name for place in places] == ["Still here"]


def test_unrecognized_json_is_fatal() -> None:
    with pytest.raises(SourceError, match="Unrecognized Google Takeout JSON"):
        GoogleTakeoutSource().import_from_data(b'{"foo": 1}', "json")
    with pytest.raises(SourceError):
        GoogleTakeoutSource().import_from_data(b"{not json", "json")


def test_csv_uses_file_stem_as_list_name(tmp_path: Path) -> None:
    path = tmp_path / "Favorite places.csv"
    path.write_text(
        "Title,Note,URL,Comment\n"
        "Joe's Pizza,,\"https://www.google.com/maps/place/?q=40.7306,-74.0021\",\n"
        ",,,\n",
        encoding="utf-8",
    )
    places = GoogleTakeoutSource().import_from_file(path)
    assert len(places) == 1
    place = places[0]
    assert place.name == "Joe's Pizza"
    assert place.coordinates.lat == 40.7306
    assert place.user_tags == ["Favorite places"]
    assert place.custom_fields["imported_from"] == "takeout_saved_csv"


def test_zip_and_directory_yield_same_ids(tmp_path: Path) -> None:
    takeout = tmp_path / "Takeout"
    _write_json(takeout / "Maps (your places)" / "Saved Places.json", {"features": [_feature([1.5, 2.5], name="A")]})
    (takeout / "Saved").mkdir()
    (takeout / "Saved" / "Bars.csv").write_text("Title,URL\nB,\n", encoding="utf-8")
    (takeout / "Other").mkdir()
    (takeout / "Other" / "ignored.json").write_text("{}", encoding="utf-8")

    archive_path = tmp_path / "takeout.zip"
    with zipfile.ZipFile(archive_path, "w") as archive:
        for path in takeout.rglob("*"):
            if path.is_file():
                archive.write(path, path.relative_to(tmp_path).as_posix())

    source = GoogleTakeoutSource()
    from_dir = source.import_from_file(takeout)
    from_zip = source.import_from_file(archive_path)
    assert {p.name for p in from_dir} == {"A", "B"}
    assert {p.id for p in from_dir} == {p.id for p in from_zip}


def test_bad_member_in_archive_is_skipped(tmp_path: Path) -> None:
    archive_path = tmp_path / "takeout.zip"
    with zipfile.ZipFile(archive_path, "w") as archive:
        archive.writestr("Takeout/Maps/broken.json", "{not json")
        archive.writestr("Takeout/Maps/good.json", json.dumps({"features": [_feature([1, 1], name="Good")]}))
    places = GoogleTakeoutSource().import_from_file(archive_path)
    assert [p.name for p in places] == ["Good"]


def test_corrupt_archive_and_unknown_extension(tmp_path: Path) -> None:
    corrupt = tmp_path / "takeout.zip"
    corrupt.write_bytes(b"not a zip")
    with pytest.raises(SourceError):
        GoogleTakeoutSource().import_from_file(corrupt)

    other = tmp_path / "notes.txt"
    other.write_text("hello", encoding="utf-8")
    with pytest.raises(UnsupportedFormatError):
        GoogleTakeoutSource().import_from_file(other)
