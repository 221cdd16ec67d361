import copy
import json
import os
import yaml

NATIVE_UNIT = 10 ** 18

DEFAULT_CONFIG = {
    "simulation": {"steps": 100, "seed": None},
    "blockchain": {"block_time": 12.0, "confirmations": 1},
    "deployer": {"native_balance": 1_000 * NATIVE_UNIT},
    "tokens": [],
    "traders": {
        "count": 0,
        "native_balance": 10 * NATIVE_UNIT,
        "token_balance": 1_000 * NATIVE_UNIT,
        "trade_probability": 0.5,
        "max_trade_fraction": 0.05,
        "slippage_tolerance": 0.01,
        "token_to_token_probability": 0.0,
    },
}


_LOADERS = {
    ".yaml": yaml.safe_load,
    ".yml": yaml.safe_load,
    ".json": json.load,
}


def load_config(path: str) -> dict:
    """
    Read a YAML or JSON simulation config into a dictionary.

    Parameters
    ----------
    path : str
        Location of a ``.yaml``, ``.yml`` or ``.json`` file.

    Returns
    -------
    dict
        The parsed mapping, not yet merged with ``DEFAULT_CONFIG``.

    Raises
    ------
    FileNotFoundError
        If ``path`` is not a file.
    ValueError
        If the extension is not one of the above, or the document is not a mapping.
    """
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Config file not found: {path}")

    loader = _LOADERS.get(os.path.splitext(path)[1].lower())
    if loader is None:
        raise ValueError(f"Unsupported config extension for {path}; use .yaml, .yml or .json.")

    with open(path, "r") as f:
        data = loader(f)

    if not isinstance(data, dict):
        raise ValueError(f"Config root must be a dictionary, got {type(data).__name__}.")
    return data


def merge_with_defaults(config: dict, defaults: dict = None) -> dict:
    """
    Return a copy of ``config`` with missing keys filled from ``defaults``.

    Nested dictionaries are merged key by key; any other value in ``config``
    (including lists) replaces the default outright.
    """
    merged = copy.deepcopy(DEFAULT_CONFIG if defaults is None else defaults)
    for key, value in config.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_with_defaults(value, merged[key])
        else:
            merged[key] = copy.deepcopy(value)
    return merged
