"""Command-line interface for KrcahPy.

This module provides the `run` subcommand: bone enhancement driven by an INI
configuration file. It handles argument parsing, configuration file
validation, and hands off to the pipeline runner.

Example:
    KrcahPy run --cfg_path path/to/config.ini
    KrcahPy run --cfg_path Template_Krcah.ini --output_mode verbose
"""

import argparse
from krcahpy.core import runner

class CLI:
    def __init__(self, subparsers) -> None:
        """Initializes subparsers for input parameters

        :param subparsers: Parsers for each relevant module
        :type subparsers: argparse._SubParsersAction
        """
        self.subparsers = subparsers
        pass

    def validate_args(self, args):
        """Validation step for parsed user input arguments.

        master_cli.py passes a dict (via vars(...)). Other callers may pass an
        argparse.Namespace. Support both.

        :param args: Parsed user inputs
        :type args: dictionary
        :return: Parsed and validated arguments
        :rtype: dictionary
        """
        import os

        from krcahpy.configs.paths import resolve_config_path

        cfg_path = None
        if isinstance(args, dict):
            cfg_path = args.get('cfg_path', None)
        else:
            cfg_path = getattr(args, 'cfg_path', None)

        if cfg_path is None:
            raise ValueError(
                "Missing required argument: --cfg_path\n"
                "Usage: KrcahPy run --cfg_path path/to/config.ini"
            )

        cfg_path = resolve_config_path(str(cfg_path))
        if not os.path.exists(cfg_path):
            raise FileNotFoundError(
                f"Configuration file not found: {cfg_path}\n"
                f"Please check the path and try again."
            )

        # Normalize back into args to keep downstream expectations consistent.
        if isinstance(args, dict):
            args['cfg_path'] = cfg_path
        else:
            setattr(args, 'cfg_path', cfg_path)

        return args

    def run(self, args):
        """Run computation using parsed user inputs

        :param args: User inputs for relevant parameters
        :type args: dictionary
        """
        runner.run(args)


    def add_subparser_args(self) -> argparse:
        """Defines the `run` subparser.

        :return: argparse object containing subparsers for each computation parameter
        :rtype: argparse
        """

        subparser = self.subparsers.add_parser("run",
                                        description="run bone enhancement from a configuration file",
                                        )

        subparser.add_argument("--cfg_path", nargs=None, type=str,
                            dest='cfg_path',
                            required=True,
                            help="The path to the configuration file (or the name of a packaged template)")

        subparser.add_argument(
            "--output_mode",
            type=str,
            required=False,
            default=None,
            choices=["quiet", "standard", "verbose", "debug"],
            help="Terminal output mode (overrides config): quiet | standard | verbose | debug",
        )

        return self.subparsers
