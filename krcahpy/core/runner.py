from __future__ import annotations

import configparser
import logging
import os
import time

from krcahpy.configs.paths import resolve_config_path
from krcahpy.core.configuration import config_from_arguments
from krcahpy.core.validation import ConfigurationError


def _apply_output_mode(input_cfg_file: configparser.ConfigParser, output_mode) -> None:
    if not output_mode:
        return
    if not input_cfg_file.has_section('DEBUG'):
        input_cfg_file.add_section('DEBUG')
    input_cfg_file.set('DEBUG', 'output_mode', str(output_mode))


def load_config(cfg_path: str) -> configparser.ConfigParser:
    """Read an INI file (or a packaged template name) and record where it came from."""
    resolved = resolve_config_path(cfg_path)
    if not resolved or not os.path.exists(resolved):
        raise ConfigurationError(
            f"Configuration file not found: {cfg_path}\n"
            f"Please check the path and try again."
        )

    input_cfg_file = configparser.ConfigParser()
    input_cfg_file.read(resolved)

    if not input_cfg_file.has_section('DEBUG'):
        input_cfg_file.add_section('DEBUG')
    input_cfg_file.set('DEBUG', 'cfg_source', str(resolved))
    return input_cfg_file


def run_config(input_cfg_file: configparser.ConfigParser):
    """Run the full pipeline for an already-built configuration and return the finished run."""
    from krcahpy.core.bone_enhancement import BoneEnhancement

    start = time.time()
    model = BoneEnhancement(input_cfg_file)
    model()
    end = time.time()
    logging.info(f"Total Runtime: {round(end-start,4)} sec")
    return model


def run(cfg_dct):
    """Entrypoint used by the `run` subcommand."""
    cfg_path = cfg_dct.get('cfg_path', None)
    if not cfg_path:
        raise ConfigurationError(
            "No configuration file given.\n"
            "Usage: KrcahPy run --cfg_path path/to/config.ini"
        )

    input_cfg_file = load_config(cfg_path)
    _apply_output_mode(input_cfg_file, cfg_dct.get('output_mode', None))
    return run_config(input_cfg_file)


def build_config_from_args(cfg_dct) -> configparser.ConfigParser:
    """Translate `enhance` subcommand arguments into a run configuration."""
    output_measure = str(cfg_dct['output_measure'])
    save_dir = cfg_dct.get('save_dir', None) or os.path.dirname(os.path.abspath(output_measure))

    input_cfg_file = config_from_arguments(
        cfg_dct['input'],
        sigmas=cfg_dct['sigmas'],
        enhance=cfg_dct.get('enhance', 'bright'),
        parameter_set=cfg_dct.get('parameter_set', 'implementation'),
        mask_file=cfg_dct.get('mask', '') or '',
        background_value=int(cfg_dct.get('background_value', 0) or 0),
        save_dir=save_dir,
        run_tag=cfg_dct.get('run_tag', None),
        output_mode=cfg_dct.get('output_mode', None),
    )
    input_cfg_file.set('OUTPUT', 'preprocessed_file', str(cfg_dct['output_preprocessed']))
    input_cfg_file.set('OUTPUT', 'measure_file', output_measure)

    input_cfg_file['PREPROCESSING'] = {
        'enabled': str(not bool(cfg_dct.get('no_preprocessing', False))),
        'sigma': str(float(cfg_dct.get('preprocess_sigma', 1.0))),
        'scaling': str(float(cfg_dct.get('preprocess_scaling', 10.0))),
    }
    device = cfg_dct.get('device', None)
    if device:
        input_cfg_file['DEVICE'] = {'DEVICE': str(device)}
    return input_cfg_file


def enhance(cfg_dct):
    """Entrypoint used by the `enhance` subcommand."""
    return run_config(build_config_from_args(cfg_dct))
