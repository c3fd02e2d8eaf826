import pytest
from pydantic import ValidationError

from xyzhub.models.models.cli import DEFAULT_API_BASE_URL, CLIConfig, TokenData
from xyzhub.models.models.upload import (
    DEFAULT_CHUNK_SIZE,
    UploadOptions,
    UploadSummary,
    UploadTask,
    split_csv_option,
)

# --------------------------------------------------------
# Tests for UploadOptions
# --------------------------------------------------------


def test_split_csv_option():
    assert split_csv_option(" a, b ,,c ") == ["a", "b", "c"]
    assert split_csv_option(None) == []
    assert split_csv_option("") == []


def test_defaults():
    options = UploadOptions()
    assert options.chunk == DEFAULT_CHUNK_SIZE
    assert options.files == []
    assert options.delimiter == ","
    assert options.quote == '"'


def test_unique_is_the_default_mode():
    assert UploadOptions().unique is True
    assert UploadOptions(override=True).unique is False


def test_list_properties():
    options = UploadOptions(
        file="a.csv,https://example.com/b.geojson",
        ptag="name, type",
        id_fields="code",
        string_fields="zip",
    )
    assert options.files == ["a.csv", "https://example.com/b.geojson"]
    assert options.tag_properties == ["name", "type"]
    assert options.id_properties == ["code"]
    assert options.string_field_names == ["zip"]


@pytest.mark.parametrize(
    "kwargs,message",
    [
        ({"unique": True, "override": True}, "either unique or override"),
        ({"assign": True, "stream": True}, "assign mode"),
        ({"file": "a.csv,roads.SHP", "stream": True}, "Stream option is not supported"),
        ({"file": "trip.gpx", "stream": True}, "Stream option is not supported"),
        ({"chunk": 0}, "chunk size"),
        ({"delimiter": ";;"}, "single character"),
        ({"quote": ""}, "single character"),
    ],
)
def test_invalid_options(kwargs, message):
    with pytest.raises(ValidationError, match=message):
        UploadOptions(**kwargs)


def test_unknown_option():
    with pytest.raises(ValidationError):
        UploadOptions(colour="red")


# --------------------------------------------------------
# Tests for UploadTask and UploadSummary
# --------------------------------------------------------


def test_upload_task():
    task = UploadTask(space_id="s", features=[{"type": "Feature"}] * 3)
    assert task.feature_count == 3
    assert task.retry_count == 3


@pytest.mark.parametrize(
    "uploaded,elapsed,rate",
    [(1000, 2.0, 500), (10, 0.0, 10), (7, 3.0, 2)],
)
def test_upload_rate(uploaded, elapsed, rate):
    summary = UploadSummary(space_id="s", uploaded=uploaded, elapsed_seconds=elapsed)
    assert summary.rate == rate


# --------------------------------------------------------
# Tests for the CLI configuration
# --------------------------------------------------------


def test_cli_config_defaults():
    config = CLIConfig(token={"access_token": "abc"})
    assert config.api_base_url == DEFAULT_API_BASE_URL
    assert config.gzip is True


@pytest.mark.parametrize(
    "url", ["localhost:8080", "ftp://hub.example.com", "http://", "https://a b.com"]
)
def test_cli_config_invalid_url(url):
    with pytest.raises(ValidationError):
        CLIConfig(api_base_url=url, token={"access_token": "abc"})


def test_cli_config_invalid_timeout():
    with pytest.raises(ValidationError):
        CLIConfig(token={"access_token": "abc"}, timeout=0)


def test_token_with_whitespace():
    with pytest.raises(ValidationError):
        TokenData(access_token="ab c")


def test_with_token():
    config = CLIConfig(token={"access_token": "abc"})
    assert config.with_token(None) is config
    other = config.with_token("xyz")
    assert other.token.access_token == "xyz"
    assert config.token.access_token == "abc"
