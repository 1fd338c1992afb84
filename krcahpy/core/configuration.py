import configparser
import logging
import os

from krcahpy.core.eigen import resolve_device
from krcahpy.core.logfmt import DETAIL
from krcahpy.core.validation import ConfigurationError
from krcahpy.krcah.parameters import DEFAULT_COEFFICIENTS, CalibrationStrategy, CoefficientSet, Polarity


NONE_LIKE = {'n/a', 'n\\a', 'na', 'none'}


class configuration:
    def __init__(self, cfg_file) -> None:
        self.cfg_file = cfg_file
        self._validate_config(cfg_file)  # Validate before setup
        self._setup_config(cfg_file)
        pass

    @staticmethod
    def _normalize_output_mode(value: str | None) -> str:
        if value is None:
            return 'standard'
        v = str(value).strip().lower()
        if v in {'quiet', 'q'}:
            return 'quiet'
        if v in {'standard', 'std', 'default'}:
            return 'standard'
        if v in {'verbose', 'v'}:
            return 'verbose'
        if v in {'debug', 'dbg'}:
            return 'debug'
        raise ConfigurationError(
            "Invalid output_mode value.\n"
            "Valid options: quiet | standard | verbose | debug\n"
            f"Current value: '{value}'"
        )

    @staticmethod
    def _parse_sigmas(value: str) -> list[float]:
        parts = [p for p in str(value).replace(';', ',').replace(' ', ',').split(',') if p.strip()]
        try:
            sigmas = [float(p) for p in parts]
        except ValueError:
            raise ConfigurationError(
                "Invalid sigmas value: must be a comma-separated list of numbers.\n"
                f"Current value: '{value}'"
            )
        if not sigmas or any(s <= 0 for s in sigmas):
            raise ConfigurationError(
                f"Invalid sigmas: {value}\n"
                "Provide at least one scale; every sigma must be > 0 (physical units)."
            )
        return sigmas

    @property
    def output_mode(self) -> str:
        return str(getattr(self, '_output_mode', 'standard'))

    @property
    def diagnostics_enabled(self) -> bool:
        return self.output_mode == 'debug'

    def _validate_config(self, input_cfg_file) -> None:
        """Validate configuration file for required sections/options and file paths."""
        required_sections = ['INPUT', 'GLOBAL']
        for section in required_sections:
            if not input_cfg_file.has_section(section):
                raise ConfigurationError(
                    f"Missing required section [{section}] in configuration file.\n"
                    f"Check your .ini file and ensure all required sections are present."
                )

        if not input_cfg_file.has_option('INPUT', 'image_file'):
            raise ConfigurationError(
                "Missing required field 'image_file' in [INPUT] section.\n"
                "This should specify the intensity volume (NIfTI format).\n"
                "Add 'image_file = /path/to/file' to your configuration."
            )
        image_path = input_cfg_file['INPUT']['image_file']
        if not os.path.exists(image_path):
            raise ConfigurationError(
                f"File not found: {image_path}\n"
                f"Specified in configuration as 'image_file'.\n"
                f"Check that the path is correct and the file exists."
            )

        if input_cfg_file.has_option('INPUT', 'mask_file'):
            mask_path = str(input_cfg_file['INPUT']['mask_file']).strip()
            if mask_path and mask_path.lower() not in ({'auto'} | NONE_LIKE):
                if not os.path.exists(mask_path):
                    raise ConfigurationError(
                        f"Mask file not found: {mask_path}\n"
                        f"Specified in configuration as 'mask_file'.\n"
                        f"Use 'mask_file = auto' to auto-generate a mask, leave it blank to use every voxel, "
                        f"or provide a valid path."
                    )

        if input_cfg_file.has_option('INPUT', 'background_value'):
            try:
                int(input_cfg_file['INPUT']['background_value'])
            except ValueError:
                raise ConfigurationError(
                    "Invalid background_value: must be an integer mask label.\n"
                    f"Current value: '{input_cfg_file['INPUT']['background_value']}'"
                )

        if not input_cfg_file.has_option('GLOBAL', 'sigmas'):
            raise ConfigurationError(
                "Missing required field 'sigmas' in [GLOBAL] section.\n"
                "Add e.g. 'sigmas = 0.5, 0.75, 1.0' (physical units) to your configuration."
            )
        self._parse_sigmas(input_cfg_file['GLOBAL']['sigmas'])

        # Selector values fail fast with the same errors the core raises.
        Polarity.parse(input_cfg_file['GLOBAL'].get('enhance', 'bright'))
        CalibrationStrategy.parse(input_cfg_file['GLOBAL'].get('parameter_set', 'implementation'))

        if input_cfg_file.has_section('PREPROCESSING'):
            for opt, lower in (('sigma', 0.0), ('scaling', None)):
                if not input_cfg_file.has_option('PREPROCESSING', opt):
                    continue
                try:
                    val = float(input_cfg_file['PREPROCESSING'][opt])
                except ValueError:
                    raise ConfigurationError(
                        f"Invalid preprocessing {opt} value: must be a number.\n"
                        f"Current value: '{input_cfg_file['PREPROCESSING'][opt]}'"
                    )
                if (lower is not None and val <= lower) or val < 0:
                    raise ConfigurationError(
                        f"Invalid preprocessing {opt}: {val}\n"
                        f"sigma must be > 0 and scaling must be >= 0."
                    )
            if input_cfg_file.has_option('PREPROCESSING', 'enabled'):
                try:
                    input_cfg_file.getboolean('PREPROCESSING', 'enabled')
                except ValueError:
                    raise ConfigurationError(
                        "Invalid [PREPROCESSING] enabled value: must be a boolean (true/false).\n"
                        f"Current value: '{input_cfg_file['PREPROCESSING']['enabled']}'"
                    )

        if input_cfg_file.has_section('CALIBRATION'):
            for opt in ('alpha', 'beta', 'gamma'):
                if input_cfg_file.has_option('CALIBRATION', opt):
                    raw = input_cfg_file['CALIBRATION'][opt]
                    try:
                        val = float(raw)
                    except ValueError:
                        raise ConfigurationError(
                            f"Invalid [CALIBRATION] {opt} value: must be a number.\n" f"Current value: '{raw}'"
                        )
                    if not (val >= 0):
                        raise ConfigurationError(
                            f"Invalid [CALIBRATION] {opt}: {val}\n" "Coefficients must be >= 0."
                        )

        if input_cfg_file.has_section('DEVICE') and input_cfg_file.has_option('DEVICE', 'DEVICE'):
            dev = str(input_cfg_file.get('DEVICE', 'DEVICE', fallback='')).strip().lower()
            if dev not in {'', 'auto', 'cpu', 'cuda'}:
                raise ConfigurationError(
                    f"Invalid [DEVICE] DEVICE: '{dev}'\n" "Valid values: auto | cpu | cuda"
                )

        if input_cfg_file.has_section('DEVICE') and input_cfg_file.has_option('DEVICE', 'n_jobs'):
            raw = input_cfg_file.get('DEVICE', 'n_jobs')
            try:
                n_jobs = int(str(raw).strip())
            except ValueError:
                raise ConfigurationError(
                    f"Invalid [DEVICE] n_jobs value: must be an integer.\n" f"Current value: '{raw}'"
                )
            if n_jobs == 0:
                raise ConfigurationError(
                    "Invalid [DEVICE] n_jobs: 0\n" "Use a positive worker count, or -1 for every core."
                )

        if input_cfg_file.has_section('DEBUG') and input_cfg_file.has_option('DEBUG', 'output_mode'):
            self._normalize_output_mode(input_cfg_file.get('DEBUG', 'output_mode'))

        logging.getLogger().log(DETAIL, "✓ Configuration validation passed")

    def _setup_config(self, input_cfg_file) -> None:
        # Input Parameters
        self.image_path = input_cfg_file['INPUT']['image_file']
        self.mask_path = input_cfg_file['INPUT'].get('mask_file', '')
        # Mask semantics:
        # - missing key or empty value: every voxel participates in estimation
        # - explicit 'auto': median_otsu foreground mask
        # - explicit none-like values: same as empty (n/a, na, none, n\a)
        if isinstance(self.mask_path, str):
            m = self.mask_path.strip()
            self.mask_path = '' if m.lower() in NONE_LIKE else m
        self.background_value = int(input_cfg_file['INPUT'].get('background_value', 0))

        # Output mode (controls terminal verbosity + progress rendering).
        raw_output_mode = input_cfg_file.get('DEBUG', 'output_mode', fallback=None)
        self._output_mode = self._normalize_output_mode(raw_output_mode)
        self.verbose_flag = bool(self._output_mode in {'verbose', 'debug'})

        # Global Parameters
        self.polarity = Polarity.parse(input_cfg_file['GLOBAL'].get('enhance', 'bright'))
        self.parameter_set = CalibrationStrategy.parse(input_cfg_file['GLOBAL'].get('parameter_set', 'implementation'))
        self.sigmas = self._parse_sigmas(input_cfg_file['GLOBAL']['sigmas'])

        # Preprocessing (Krcah unsharp mask)
        self.preprocess = input_cfg_file.getboolean('PREPROCESSING', 'enabled', fallback=True)
        self.preprocess_sigma = input_cfg_file.getfloat('PREPROCESSING', 'sigma', fallback=1.0)
        self.preprocess_scaling = input_cfg_file.getfloat('PREPROCESSING', 'scaling', fallback=10.0)

        # Calibration coefficients: strategy defaults, optionally overridden per key.
        defaults = DEFAULT_COEFFICIENTS[self.parameter_set]
        overridden = input_cfg_file.has_section('CALIBRATION') and any(
            input_cfg_file.has_option('CALIBRATION', k) for k in ('alpha', 'beta', 'gamma')
        )
        if overridden:
            self.coefficients = CoefficientSet(
                alpha=input_cfg_file.getfloat('CALIBRATION', 'alpha', fallback=defaults.alpha),
                beta=input_cfg_file.getfloat('CALIBRATION', 'beta', fallback=defaults.beta),
                gamma=input_cfg_file.getfloat('CALIBRATION', 'gamma', fallback=defaults.gamma),
            )
        else:
            self.coefficients = None

        # Computing
        cfg_device = input_cfg_file.get('DEVICE', 'DEVICE', fallback=None)
        self.DEVICE = resolve_device(cfg_device)
        self.n_jobs = input_cfg_file.getint('DEVICE', 'n_jobs', fallback=1)

        return


def config_from_arguments(
    image_file: str,
    *,
    sigmas,
    enhance: str = 'bright',
    parameter_set: str = 'implementation',
    mask_file: str = '',
    background_value: int = 0,
    save_dir: str | None = None,
    run_tag: str | None = None,
    output_mode: str | None = None,
) -> configparser.ConfigParser:
    """Build an in-memory INI equivalent to a command-line invocation."""
    cfg = configparser.ConfigParser()
    cfg['INPUT'] = {
        'image_file': str(image_file),
        'mask_file': str(mask_file or ''),
        'background_value': str(int(background_value)),
    }
    cfg['GLOBAL'] = {
        'enhance': str(enhance),
        'parameter_set': str(parameter_set),
        'sigmas': ', '.join(str(float(s)) for s in sigmas),
    }
    cfg['OUTPUT'] = {}
    if save_dir:
        cfg['OUTPUT']['save_dir'] = str(save_dir)
    if run_tag:
        cfg['OUTPUT']['run_tag'] = str(run_tag)
    cfg['DEBUG'] = {}
    if output_mode:
        cfg['DEBUG']['output_mode'] = str(output_mode)
    return cfg
