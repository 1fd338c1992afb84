__author__ = "KrcahPy developers"
__status__ = "Still Under Development"
from krcahpy._version import __version__


import torch
import numpy as np
import pandas as pd
import time

from typing import Type

import os
import sys
import platform
import importlib
import shlex
from pathlib import Path
import logging
import configparser
from datetime import datetime

from krcahpy.core.logfmt import DETAIL, STATUS, VERBOSE, KrcahFormatter, level_for_output_mode, log_banner
from krcahpy.core.progress import set_progress_enabled
from krcahpy.core.provenance import utc_now_iso, write_run_manifest
from krcahpy.core.validation import DataError, validate_tensor
from krcahpy.core.io import load_image_nifti, nifti_stem, resolve_mask, save_auto_mask_nifti, save_nifti
from krcahpy.core.configuration import configuration
from krcahpy.hessian import MultiScaleHessianEnhancement, krcah_preprocess
from krcahpy.krcah import DEFAULT_COEFFICIENTS, KrcahEigenToScalar


CALIBRATION_COLUMNS = ['sigma', 'alpha', 'beta', 'gamma', 'voxels', 'seconds']


class BoneEnhancement:
    def __init__(self, cfg_file: Type[configparser.ConfigParser]) -> None:
        self.configuration = configuration(cfg_file)
        self.coefficients = self.configuration.coefficients or DEFAULT_COEFFICIENTS[self.configuration.parameter_set]
        self.calibrations: list[dict] = []
        self.outputs: dict[str, str] = {}
        self._timings: dict[str, float] = {}
        self._argv_str: str | None = None
        self._total_runtime_s: float | None = None
        self._run_started_utc: str | None = None
        self._run_finished_utc: str | None = None
        self.configure_logging()
        return

    @staticmethod
    def _safe_version(mod_name: str) -> str:
        try:
            mod = importlib.import_module(mod_name)
            return getattr(mod, '__version__', 'unknown')
        except Exception:
            return 'unavailable'

    def _resolve_save_dir(self) -> str:
        stamp = datetime.now().strftime('%Y%m%d_%H%M')

        # When unset, save next to the input image.
        base_dir = Path(self.configuration.image_path).parent.absolute()
        run_tag = None
        cfg = self.configuration.cfg_file
        if cfg.has_section('OUTPUT'):
            raw_save_dir = cfg.get('OUTPUT', 'save_dir', fallback=None)
            raw_run_tag = cfg.get('OUTPUT', 'run_tag', fallback=None)

            if raw_save_dir is not None and str(raw_save_dir).strip() != '':
                save_dir = Path(str(raw_save_dir).strip())
                if not save_dir.is_absolute():
                    cfg_source = cfg.get('DEBUG', 'cfg_source', fallback=None)
                    if cfg_source:
                        save_dir = Path(str(cfg_source)).resolve().parent / save_dir
                    else:
                        save_dir = Path.cwd() / save_dir
                base_dir = save_dir

            if raw_run_tag is not None and str(raw_run_tag).strip() != '':
                # Keep filenames filesystem-friendly.
                run_tag = ''.join(
                    (c if (c.isalnum() or c in {'-', '_'}) else '_') for c in str(raw_run_tag).strip()
                ).strip('_')

        prefix = f"{stamp}_" + (f"{run_tag}_" if run_tag else "")
        return os.path.join(str(base_dir), f'{prefix}Krcah_Results')

    def _write_final_config_snapshot(self) -> None:
        cfg = self.configuration.cfg_file

        for section in ['INPUT', 'GLOBAL', 'PREPROCESSING', 'CALIBRATION', 'DEVICE', 'DEBUG']:
            if not cfg.has_section(section):
                cfg.add_section(section)

        cfg.set('INPUT', 'background_value', str(self.configuration.background_value))
        cfg.set('GLOBAL', 'enhance', self.configuration.polarity.value)
        cfg.set('GLOBAL', 'parameter_set', self.configuration.parameter_set.value)
        cfg.set('GLOBAL', 'sigmas', ', '.join(f"{s:g}" for s in self.configuration.sigmas))
        cfg.set('PREPROCESSING', 'enabled', str(bool(self.configuration.preprocess)))
        cfg.set('PREPROCESSING', 'sigma', str(self.configuration.preprocess_sigma))
        cfg.set('PREPROCESSING', 'scaling', str(self.configuration.preprocess_scaling))
        cfg.set('CALIBRATION', 'alpha', str(self.coefficients.alpha))
        cfg.set('CALIBRATION', 'beta', str(self.coefficients.beta))
        cfg.set('CALIBRATION', 'gamma', str(self.coefficients.gamma))
        cfg.set('DEVICE', 'DEVICE', str(self.configuration.DEVICE))
        cfg.set('DEBUG', 'output_mode', self.configuration.output_mode)

        snapshot_path = os.path.join(self.save_dir, 'config_final.ini')
        with open(snapshot_path, 'w', encoding='utf-8') as f:
            cfg.write(f)

        logging.log(DETAIL, f"Config snapshot saved: {os.path.basename(snapshot_path)}")

    def _log_verbose_runtime_environment(self) -> None:
        logging.log(VERBOSE, ' ----------------------------- ')
        logging.log(VERBOSE, '      Runtime Environment      ')
        logging.log(VERBOSE, ' ----------------------------- ')
        logging.log(VERBOSE, f"  KrcahPy Version  : {__version__}")
        logging.log(VERBOSE, f"  Python           : {sys.version.split()[0]}")
        logging.log(VERBOSE, f"  Platform         : {platform.platform()}")
        logging.log(VERBOSE, f"  NumPy            : {self._safe_version('numpy')}")
        logging.log(VERBOSE, f"  SciPy            : {self._safe_version('scipy')}")
        logging.log(VERBOSE, f"  PyTorch          : {self._safe_version('torch')}")
        logging.log(VERBOSE, f"  NiBabel          : {self._safe_version('nibabel')}")
        logging.log(VERBOSE, f"  DIPY             : {self._safe_version('dipy')}")
        logging.log(VERBOSE, f"  Working Dir      : {os.getcwd()}")
        logging.log(VERBOSE, f"  Command          : {self._argv_str}")
        logging.log(VERBOSE, f"  CUDA Available   : {torch.cuda.is_available()}")
        logging.log(VERBOSE, f"  Selected DEVICE  : {self.configuration.DEVICE}")

    def configure_logging(self) -> None:
        self.save_dir = self._resolve_save_dir()
        os.makedirs(self.save_dir, exist_ok=True)

        try:
            self._argv_str = shlex.join(sys.argv)
        except Exception:
            self._argv_str = ' '.join(str(a) for a in sys.argv)

        #### Configure Log File ####
        log_file = os.path.join(self.save_dir, 'log')
        console_level = level_for_output_mode(self.configuration.output_mode)
        file_level = min(console_level, VERBOSE)

        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setLevel(file_level)
        file_handler.setFormatter(KrcahFormatter())

        console_handler = logging.StreamHandler()
        console_handler.setLevel(console_level)
        console_handler.setFormatter(KrcahFormatter())

        logging.basicConfig(
            level=min(console_level, file_level),
            handlers=[file_handler, console_handler],
            force=True,
        )

        if self.configuration.output_mode == 'quiet':
            set_progress_enabled(False)
        else:
            set_progress_enabled(None)

        # Snapshot of the fully resolved config in the results folder.
        self._write_final_config_snapshot()

        self._log_verbose_runtime_environment()

        log_banner('Input Parameters')
        logging.info(' ----------------------------- ')
        logging.info('          Input Files          ')
        logging.info(' ----------------------------- ')
        logging.info(f"  Image File   : {os.path.split(self.configuration.image_path)[1]}")
        logging.info(f"  Mask File    : {os.path.split(self.configuration.mask_path)[1] or '(all voxels)'}")
        logging.info(
            f"  Run Config   : enhance={self.configuration.polarity.value}, "
            f"parameter_set={self.configuration.parameter_set.value}, "
            f"sigmas={self.configuration.sigmas}, device={self.configuration.DEVICE}"
        )
        logging.log(DETAIL, ' ----------------------------- ')
        logging.log(DETAIL, '    Calibration Coefficients   ')
        logging.log(DETAIL, ' ----------------------------- ')
        logging.log(DETAIL, f"  alpha = {self.coefficients.alpha:g} * max|l3|")
        logging.log(DETAIL, f"  beta  = {self.coefficients.beta:g} * max|l2|")
        logging.log(DETAIL, f"  gamma = {self.coefficients.gamma:g} * max ||H||_F")
        logging.log(DETAIL, f"  Background Label : {self.configuration.background_value}")
        if self.configuration.preprocess:
            logging.log(
                DETAIL,
                f"  Preprocessing    : unsharp mask (sigma={self.configuration.preprocess_sigma:g}, "
                f"k={self.configuration.preprocess_scaling:g})",
            )
        else:
            logging.log(DETAIL, "  Preprocessing    : disabled")
        return

    def load(self) -> None:
        t0 = time.time()
        self.image, self.header, self.affine, self.spacing = load_image_nifti(self.configuration.image_path)
        self.image_shape = tuple(int(x) for x in self.image.shape)
        logging.info(
            f"Loaded image: shape={self.image_shape[0]} x {self.image_shape[1]} x {self.image_shape[2]}, "
            f"spacing={tuple(round(s, 4) for s in self.spacing)}, dtype={self.image.dtype}"
        )

        try:
            validate_tensor(np.asarray(self.image, dtype=np.float64), "Input image", allow_inf=False)
        except DataError as e:
            logging.error(f"✗ Image data validation failed:\n{e}")
            raise

        self.mask, self.mask_source = resolve_mask(self.image, mask_path=self.configuration.mask_path)
        # median_otsu masks are labelled 0/1 regardless of the configured label.
        self.mask_background_value = 0 if self.mask_source == 'auto' else self.configuration.background_value

        if self.mask_source == 'auto':
            try:
                out_mask = save_auto_mask_nifti(
                    self.mask,
                    image_path=self.configuration.image_path,
                    affine=self.affine,
                    header=self.header,
                )
                logging.info(f"Auto mask saved: {out_mask}")
            except OSError as e:
                logging.warning(f"Could not save auto mask next to image: {e}")

        if self.mask is not None:
            n_fg = int((self.mask != self.mask_background_value).sum())
            logging.info(f"Mask applied: source={self.mask_source}, foreground_voxels={n_fg:,}")
        else:
            logging.info("Mask applied: source=none, every voxel participates in estimation")

        self._timings['load'] = float(time.time() - t0)
        return

    def preprocess(self) -> None:
        t0 = time.time()
        if self.configuration.preprocess:
            self.preprocessed = krcah_preprocess(
                self.image,
                sigma=self.configuration.preprocess_sigma,
                scaling=self.configuration.preprocess_scaling,
                spacing=self.spacing,
            )
            logging.log(DETAIL, "Unsharp-mask preprocessing applied")
        else:
            self.preprocessed = np.asarray(self.image)
        self._timings['preprocess'] = float(time.time() - t0)
        return

    def calc(self) -> None:
        t0 = time.time()
        log_banner('Krcah Bone Enhancement', level=STATUS)
        eigen_to_scalar = KrcahEigenToScalar(
            polarity=self.configuration.polarity,
            parameter_set=self.configuration.parameter_set,
            mask=self.mask,
            background_value=self.mask_background_value,
            coefficients=self.coefficients,
            device=self.configuration.DEVICE,
            n_jobs=self.configuration.n_jobs,
        )
        enhancer = MultiScaleHessianEnhancement(
            eigen_to_scalar,
            self.configuration.sigmas,
            spacing=self.spacing,
            device=self.configuration.DEVICE,
        )
        result = enhancer(self.preprocessed)
        self.measure = result.measure
        self.best_sigma = result.best_sigma
        self.calibrations = result.calibrations
        logging.log(
            STATUS,
            f"Krcah measure computed: max={float(np.max(self.measure)) if self.measure.size else 0.0:.6g}, "
            f"nonzero_voxels={int(np.count_nonzero(self.measure)):,}",
        )
        self._timings['calc'] = float(time.time() - t0)
        return

    def _output_path(self, option: str, default_name: str) -> str:
        explicit = self.configuration.cfg_file.get('OUTPUT', option, fallback='')
        if explicit and str(explicit).strip():
            return str(explicit).strip()
        return os.path.join(self.save_dir, default_name)

    def save(self) -> None:
        t0 = time.time()
        logging.info('Saving results to: {}'.format(self.save_dir))
        os.makedirs(self.save_dir, exist_ok=True)
        prefix = nifti_stem(self.configuration.image_path) + '_'

        self.outputs['preprocessed'] = save_nifti(
            self.preprocessed,
            self._output_path('preprocessed_file', f'{prefix}preprocessed.nii.gz'),
            affine=self.affine,
            header=self.header,
        )
        self.outputs['measure'] = save_nifti(
            self.measure,
            self._output_path('measure_file', f'{prefix}krcah_measure.nii.gz'),
            affine=self.affine,
            header=self.header,
            dtype=np.float32,
        )
        self.outputs['best_sigma'] = save_nifti(
            self.best_sigma,
            os.path.join(self.save_dir, f'{prefix}best_sigma.nii.gz'),
            affine=self.affine,
            header=self.header,
            dtype=np.float32,
        )
        for name, path in self.outputs.items():
            logging.log(DETAIL, f"  {name:<12}: {path}")

        calibration_path = os.path.join(self.save_dir, 'calibration.csv')
        pd.DataFrame(self.calibrations, columns=CALIBRATION_COLUMNS).to_csv(calibration_path, index=False)
        logging.log(DETAIL, f'Per-scale calibration saved to: {calibration_path}')

        self._timings['save'] = float(time.time() - t0)
        return

    def __call__(self) -> None:
        log_banner('Starting Krcah Bone Enhancement', level=STATUS)

        self._run_started_utc = utc_now_iso()
        start_t = time.time()

        self.load()
        self.preprocess()
        self.calc()
        self.save()

        self._total_runtime_s = float(time.time() - start_t)
        self._run_finished_utc = utc_now_iso()
        write_run_manifest(self, krcahpy_version=__version__)

        return
