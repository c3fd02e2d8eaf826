import pytest

from xyzhub.cli.cli.utils.transform import (
    convert_value,
    parse_number,
    to_geojson_feature,
    to_geometry,
    transform,
)
from xyzhub.models.models.features import XYZ_NAMESPACE
from xyzhub.models.models.upload import UploadOptions


class TestValueConversion:
    """Tests for number and boolean detection"""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("12", 12),
            ("-3", -3),
            ("1.5", 1.5),
            (" 2.25 ", 2.25),
            ("1e3", 1000.0),
            (".5", 0.5),
            ("abc", None),
            ("", None),
            ("nan", None),
            ("inf", None),
            ("1_000", None),
            (None, None),
            (7, 7),
        ],
    )
    def test_parse_number(self, value, expected):
        assert parse_number(value) == expected

    def test_convert_value(self):
        assert convert_value("42") == 42
        assert convert_value("TRUE") is True
        assert convert_value(" false ") is False
        assert convert_value("  Berlin ") == "Berlin"
        assert convert_value(None) == ""

    def test_convert_value_keep_string(self):
        assert convert_value("00123", keep_string=True) == "00123"
        assert convert_value("true", keep_string=True) == "true"


class TestToGeometry:
    """Tests for to_geometry"""

    def test_point(self):
        assert to_geometry("52.5", "13.4") == {"type": "Point", "coordinates": [13.4, 52.5]}

    def test_point_with_altitude(self):
        assert to_geometry("52.5", "13.4", "34") == {
            "type": "Point",
            "coordinates": [13.4, 52.5, 34],
        }

    def test_zero_altitude_is_dropped(self):
        assert to_geometry("52.5", "13.4", "0")["coordinates"] == [13.4, 52.5]

    @pytest.mark.parametrize("lat,lon", [("0", "0"), (None, "13.4"), ("52.5", "abc"), ("", "")])
    def test_unusable_positions(self, lat, lon):
        assert to_geometry(lat, lon) is None


class TestToGeoJsonFeature:
    """Tests for the CSV row to feature conversion"""

    @pytest.fixture
    def options(self):
        return UploadOptions()

    def test_well_known_columns(self, options):
        feature = to_geojson_feature(
            {"Name": " A ", "Latitude": "52.5", "LON": "13.4", "pop": "12", "open": "true"},
            options,
        )
        assert feature == {
            "type": "Feature",
            "geometry": {"type": "Point", "coordinates": [13.4, 52.5]},
            "properties": {"Name": "A", "pop": 12, "open": True},
        }

    def test_altitude_column(self, options):
        feature = to_geojson_feature({"y": "1", "x": "2", "z": "3"}, options)
        assert feature["geometry"]["coordinates"] == [2, 1, 3]

    def test_keys_are_stripped(self, options):
        feature = to_geojson_feature({" lat ": "1", " lon": "2", " name ": "x"}, options)
        assert feature["geometry"]["coordinates"] == [2, 1]
        assert feature["properties"] == {"name": "x"}

    def test_explicit_columns_override_detection(self):
        options = UploadOptions(lat="north", lon="east")
        feature = to_geojson_feature({"north": "10", "east": "20", "lat": "99"}, options)
        assert feature["geometry"]["coordinates"] == [20, 10]
        # "lat" is no longer a coordinate column
        assert feature["properties"] == {"lat": 99}

    def test_point_column(self):
        options = UploadOptions(point="location")
        feature = to_geojson_feature({"location": "POINT (52.5 -13.4)", "n": "1"}, options)
        assert feature["geometry"]["coordinates"] == [-13.4, 52.5]
        assert feature["properties"] == {"n": 1}

    def test_string_fields(self):
        options = UploadOptions(string_fields="zip,flag")
        feature = to_geojson_feature(
            {"lat": "1", "lon": "1", "zip": "01234", "flag": "true", "other": "01234"}, options
        )
        assert feature["properties"] == {"zip": "01234", "flag": "true", "other": 1234}

    def test_empty_cells_become_empty_strings(self, options):
        feature = to_geojson_feature({"lat": "1", "lon": "1", "note": None}, options)
        assert feature["properties"]["note"] == ""

    def test_null_island(self, options):
        feature = to_geojson_feature({"lat": "0", "lon": "0", "n": "a"}, options)
        assert feature["geometry"] is None
        assert feature["properties"][XYZ_NAMESPACE] == {"tags": ["null_island"]}

    def test_missing_coordinates_are_null_island(self, options):
        feature = to_geojson_feature({"n": "a"}, options)
        assert feature["geometry"] is None
        assert feature["properties"][XYZ_NAMESPACE]["tags"] == ["null_island"]

    def test_unparsable_coordinates_are_invalid(self, options):
        feature = to_geojson_feature({"lat": "north", "lon": "east"}, options)
        assert feature["geometry"] is None
        assert feature["properties"][XYZ_NAMESPACE]["tags"] == ["invalid"]

    def test_transform(self, options):
        rows = [{"lat": str(i), "lon": str(i)} for i in range(1, 4)]
        features = transform(rows, options)
        assert [f["geometry"]["coordinates"] for f in features] == [[1, 1], [2, 2], [3, 3]]
