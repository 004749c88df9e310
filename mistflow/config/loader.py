# --------------------------------------------------------------------------------
# Copyright (c) 2026 Krushang Gabani
# All rights reserved.
#
# YAML configuration loading through yacs CfgNode, merged over the Config
# dataclass defaults.
#
# Author: Krushang Gabani
# Date: October 19, 2026
# --------------------------------------------------------------------------------

from typing import List, Optional

from yacs.config import CfgNode as CN

from mistflow.config.base_config import Config


def get_cfg_defaults() -> CN:
    """Return a CfgNode mirroring the Config dataclass defaults."""
    return CN(Config().to_dict())


def cfg_to_config(node: CN) -> Config:
    values = {}
    for key, value in node.items():
        values[key] = tuple(value) if isinstance(value, list) else value
    return Config(**values)


def load_config(path: Optional[str] = None, opts: Optional[List[str]] = None) -> Config:
    """
    Build a validated Config from the defaults, an optional YAML file and an
    optional ``[KEY, VALUE, ...]`` override list. yacs rejects unknown keys
    (``KeyError`` from a file, ``AssertionError`` from the list) and values
    whose type does not match the default (``ValueError``).
    """
    node = get_cfg_defaults()
    if path is not None:
        node.merge_from_file(path)
    if opts:
        node.merge_from_list(list(opts))
    node.freeze()
    return cfg_to_config(node).validate()
