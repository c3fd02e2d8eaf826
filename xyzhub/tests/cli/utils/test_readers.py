import io
import json
import os
from unittest.mock import MagicMock, patch

import fiona
import pytest
from fiona.transform import transform

from xyzhub.cli.cli.utils.readers import (
    InputParseError,
    deliver_in_batches,
    read_csv_as_chunks,
    read_csv_rows,
    read_gpx,
    read_geojson_as_chunks,
    read_json_file,
    read_line_as_chunks,
    read_line_from_file,
    read_shapefile,
    read_stdin,
    resolve_input_path,
)
from xyzhub.cli.cli.utils.upload_queue import UploadQueue
from xyzhub.models.models.upload import UploadTask


def point(i):
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [i, i]},
        "properties": {"i": i},
    }


class RecordingConsumer:
    """Collects delivered batches and hands back a real queue"""

    def __init__(self):
        self.batches = []

        async def upload(task):
            return None

        self.queue = UploadQueue(upload, on_progress=None)

    async def __call__(self, batch):
        self.batches.append(list(batch))
        return self.queue


class TestOneShotReaders:
    """Tests for readers that load the whole input"""

    def test_read_line_from_file_skips_blank_lines(self, tmp_path):
        path = tmp_path / "data.geojsonl"
        path.write_text(json.dumps(point(1)) + "\n\n  \n" + json.dumps(point(2)) + "\n")
        assert read_line_from_file(str(path)) == [point(1), point(2)]

    def test_read_line_from_file_reports_line_number(self, tmp_path):
        path = tmp_path / "broken.geojsonl"
        path.write_text(json.dumps(point(1)) + "\n{not json\n")
        with pytest.raises(InputParseError, match="line 2"):
            read_line_from_file(str(path))

    def test_read_csv_rows_keeps_strings(self, tmp_path):
        path = tmp_path / "points.csv"
        path.write_text("name,lat,lon\nA,52.5,13.4\nB,48.1,11.6\n")
        rows = read_csv_rows(str(path))
        assert rows == [
            {"name": "A", "lat": "52.5", "lon": "13.4"},
            {"name": "B", "lat": "48.1", "lon": "11.6"},
        ]

    def test_read_csv_rows_custom_delimiter_and_quote(self, tmp_path):
        path = tmp_path / "points.csv"
        path.write_text("name;note\n'A;B';x\n")
        rows = read_csv_rows(str(path), delimiter=";", quote="'")
        assert rows == [{"name": "A;B", "note": "x"}]

    def test_read_csv_rows_empty_file(self, tmp_path):
        path = tmp_path / "empty.csv"
        path.write_text("")
        with pytest.raises(InputParseError):
            read_csv_rows(str(path))

    def test_read_json_file(self, tmp_path):
        path = tmp_path / "data.geojson"
        document = {"type": "FeatureCollection", "features": [point(1)]}
        path.write_text(json.dumps(document))
        assert read_json_file(str(path)) == document

    def test_read_json_file_invalid(self, tmp_path):
        path = tmp_path / "data.geojson"
        path.write_text("{")
        with pytest.raises(InputParseError):
            read_json_file(str(path))

    def test_read_stdin(self):
        assert read_stdin(io.StringIO(json.dumps(point(3)))) == point(3)

    def test_read_stdin_empty(self):
        with pytest.raises(InputParseError):
            read_stdin(io.StringIO("  "))

    def test_read_shapefile_wgs84(self, tmp_path):
        path = str(tmp_path / "points.shp")
        schema = {"geometry": "Point", "properties": {"name": "str"}}
        with fiona.open(
            path, "w", driver="ESRI Shapefile", crs="EPSG:4326", schema=schema
        ) as dst:
            dst.write(
                {
                    "geometry": {"type": "Point", "coordinates": (13.4, 52.5)},
                    "properties": {"name": "A"},
                }
            )

        features = read_shapefile(path)
        assert len(features) == 1
        assert features[0]["type"] == "Feature"
        assert features[0]["properties"] == {"name": "A"}
        assert features[0]["geometry"]["type"] == "Point"
        assert features[0]["geometry"]["coordinates"] == pytest.approx([13.4, 52.5])

    def test_read_shapefile_is_reprojected(self, tmp_path):
        path = str(tmp_path / "mercator.shp")
        xs, ys = transform("EPSG:4326", "EPSG:3857", [13.4], [52.5])
        schema = {"geometry": "Point", "properties": {"name": "str"}}
        with fiona.open(
            path, "w", driver="ESRI Shapefile", crs="EPSG:3857", schema=schema
        ) as dst:
            dst.write(
                {
                    "geometry": {"type": "Point", "coordinates": (xs[0], ys[0])},
                    "properties": {"name": "B"},
                }
            )

        features = read_shapefile(path)
        lon, lat = features[0]["geometry"]["coordinates"][:2]
        assert lon == pytest.approx(13.4, abs=1e-6)
        assert lat == pytest.approx(52.5, abs=1e-6)


    @pytest.mark.skipif(
        "GPX" not in fiona.supported_drivers, reason="GDAL built without the GPX driver"
    )
    def test_read_gpx_waypoints_and_tracks(self, tmp_path):
        path = tmp_path / "trip.gpx"
        path.write_text(
            '<?xml version="1.0" encoding="UTF-8"?>\n'
            '<gpx version="1.1" creator="tests" xmlns="http://www.topografix.com/GPX/1/1">\n'
            '  <wpt lat="52.5" lon="13.4"><name>start</name></wpt>\n'
            "  <trk><name>walk</name><trkseg>\n"
            '    <trkpt lat="52.5" lon="13.4"/><trkpt lat="52.6" lon="13.5"/>\n'
            "  </trkseg></trk>\n"
            "</gpx>\n"
        )
        features = read_gpx(str(path))
        by_name = {f["properties"]["name"]: f for f in features}
        assert set(by_name) == {"start", "walk"}
        assert by_name["start"]["geometry"]["type"] == "Point"
        assert by_name["walk"]["geometry"]["type"] == "MultiLineString"
        assert all(v is not None for f in features for v in f["properties"].values())


class TestResolveInputPath:
    """Tests for resolve_input_path"""

    def test_local_path_is_unchanged(self, tmp_path):
        path = tmp_path / "local.csv"
        path.write_text("a\n1\n")
        with resolve_input_path(str(path)) as resolved:
            assert resolved == str(path)

    def test_missing_local_path(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            with resolve_input_path(str(tmp_path / "missing.csv")):
                pass

    def test_remote_file_is_downloaded_and_removed(self):
        response = MagicMock()
        response.iter_bytes.return_value = [b"name,lat", b",lon\nA,1,2\n"]
        stream = MagicMock()
        stream.__enter__.return_value = response

        with patch(
            "xyzhub.cli.cli.utils.readers.httpx.stream", return_value=stream
        ) as mock_stream:
            with resolve_input_path("https://example.com/data/points.csv?x=1") as resolved:
                assert resolved.endswith(".csv")
                with open(resolved) as f:
                    assert f.read() == "name,lat,lon\nA,1,2\n"
        mock_stream.assert_called_once()
        assert not os.path.exists(resolved)


class TestStreamingAdapters:
    """Tests for the read_*_as_chunks adapters"""

    @pytest.mark.asyncio
    async def test_deliver_in_batches_with_remainder(self):
        consumer = RecordingConsumer()
        state = await deliver_in_batches(iter(range(5)), 2, consumer)
        assert consumer.batches == [[0, 1], [2, 3], [4]]
        assert state.uploaded == 0

    @pytest.mark.asyncio
    async def test_deliver_in_batches_delivers_empty_remainder(self):
        consumer = RecordingConsumer()
        await deliver_in_batches(iter(range(4)), 2, consumer)
        assert consumer.batches == [[0, 1], [2, 3], []]

    @pytest.mark.asyncio
    async def test_deliver_in_batches_shuts_the_queue_down(self):
        consumer = RecordingConsumer()
        await deliver_in_batches([], 10, consumer)
        assert consumer.batches == [[]]
        with pytest.raises(RuntimeError):
            await consumer.queue.send(MagicMock())

    @pytest.mark.asyncio
    async def test_read_line_as_chunks(self, tmp_path):
        path = tmp_path / "data.geojsonl"
        path.write_text("\n".join(json.dumps(point(i)) for i in range(5)))
        consumer = RecordingConsumer()
        await read_line_as_chunks(str(path), 2, consumer)
        assert [len(b) for b in consumer.batches] == [2, 2, 1]
        assert consumer.batches[0][0] == point(0)

    @pytest.mark.asyncio
    async def test_read_line_as_chunks_fails_fast(self, tmp_path):
        path = tmp_path / "data.geojsonl"
        path.write_text(json.dumps(point(0)) + "\n" + json.dumps(point(1)) + "\nbroken\n")
        consumer = RecordingConsumer()
        with pytest.raises(InputParseError, match="line 3"):
            await read_line_as_chunks(str(path), 1, consumer)
        assert len(consumer.batches) == 2

    @pytest.mark.asyncio
    async def test_read_csv_as_chunks(self, tmp_path):
        path = tmp_path / "points.csv"
        path.write_text("name,lat,lon\n" + "".join(f"p{i},{i},{i}\n" for i in range(7)))
        consumer = RecordingConsumer()
        await read_csv_as_chunks(str(path), 3, consumer)
        assert [len(b) for b in consumer.batches] == [3, 3, 1]
        assert consumer.batches[0][0] == {"name": "p0", "lat": "0", "lon": "0"}
        assert [row["name"] for batch in consumer.batches for row in batch] == [
            f"p{i}" for i in range(7)
        ]

    @pytest.mark.asyncio
    async def test_read_geojson_as_chunks(self, tmp_path):
        path = tmp_path / "data.geojson"
        features = [point(i) for i in range(3)]
        path.write_text(json.dumps({"type": "FeatureCollection", "features": features}))
        consumer = RecordingConsumer()
        await read_geojson_as_chunks(str(path), 2, consumer)
        assert consumer.batches == [features[:2], features[2:]]

    @pytest.mark.asyncio
    async def test_read_geojson_as_chunks_invalid(self, tmp_path):
        path = tmp_path / "data.geojson"
        path.write_text('{"type": "FeatureCollection", "features": [{"type": ')
        consumer = RecordingConsumer()
        with pytest.raises(InputParseError):
            await read_geojson_as_chunks(str(path), 2, consumer)

    @pytest.mark.asyncio
    async def test_uploads_start_while_the_file_is_still_read(self):
        reads = []
        upload_started_after = []

        def records():
            for i in range(30):
                reads.append(i)
                yield point(i)

        async def upload(task):
            upload_started_after.append(len(reads))

        queue = UploadQueue(upload, on_progress=None)

        async def consumer(batch):
            if batch:
                await queue.send(UploadTask(space_id="s1", features=batch))
            return queue

        state = await deliver_in_batches(records(), 1, consumer)
        assert state.uploaded == 30
        assert upload_started_after[0] < 25

    @pytest.mark.asyncio
    async def test_empty_source_is_reported(self):
        consumer = RecordingConsumer()
        with patch("xyzhub.cli.cli.utils.readers.logger") as mock_logger:
            await deliver_in_batches([], 10, consumer, source="empty.geojson")
        mock_logger.warning.assert_called_once_with("No records found in empty.geojson")

    @pytest.mark.asyncio
    async def test_geojson_without_features_array(self, tmp_path):
        path = tmp_path / "single.geojson"
        path.write_text(json.dumps(point(1)))
        consumer = RecordingConsumer()
        with patch("xyzhub.cli.cli.utils.readers.logger") as mock_logger:
            await read_geojson_as_chunks(str(path), 2, consumer)
        assert consumer.batches == [[]]
        mock_logger.warning.assert_called_once()
