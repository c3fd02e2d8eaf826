import os

import yaml
from pydantic import validate_call

from xyzhub.models.logging import logger


@validate_call
def get_config(filename: str) -> dict:
    """
    Get the config file.
    """
    if not filename.endswith((".yaml", ".yml")):
        raise ValueError("Invalid config file. Must be a YAML file.")
    if not os.path.exists(filename):
        raise FileNotFoundError(f"The file '{filename}' does not exist.")
    if not os.path.isfile(filename):
        raise ValueError(f"'{filename}' is not a file.")
    with open(filename) as f:
        yaml_data = yaml.safe_load(f)
    if not isinstance(yaml_data, dict):
        raise ValueError("Invalid config file: expected a dictionary.")
    logger.debug(f"Loaded configuration keys from {filename}: {list(yaml_data)}")
    return yaml_data
