import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from haarboost.data import ExampleSet
from haarboost.features import default_registry
from haarboost.training import FeaturePersistence, FeatureSerializer, HaarLearner
from haarboost.utils.config import load_config
from haarboost.utils.logger import setup_logging_from_config


class HaarSearchPipeline:
    """
    Runs one weak learner search round on a cached example set and stores the
    selected feature, or reloads a stored feature for inspection.
    """

    def __init__(self, config_path: str, overrides: Optional[Dict[str, Any]] = None, verbose: bool = False):
        """Initialize pipeline with configuration and command line overrides."""
        self.config_path = config_path
        self.config = load_config(config_path)
        self._apply_overrides(overrides or {})
        setup_logging_from_config(self.config.system, verbose=verbose)
        self.logger = logging.getLogger('HaarSearchPipeline')

        self.registry = default_registry()
        self.models_dir = Path(self.config.output.get('models_dir', 'output/features'))

    def _apply_overrides(self, overrides: Dict[str, Any]) -> None:
        if overrides.get('ftypes') is not None:
            self.config.set('features', 'types', overrides['ftypes'])
        if overrides.get('iisize') is not None:
            self.config.set('features', 'iisize', overrides['iisize'])
        if overrides.get('csample') is not None:
            option, value = overrides['csample']
            self.config.set('sampling', 'option', option)
            self.config.set('sampling', 'value', value)
        if overrides.get('seed') is not None:
            self.config.set('sampling', 'seed', overrides['seed'])
        if overrides.get('examples_dir') is not None:
            self.config.set('data', 'examples_dir', overrides['examples_dir'])
        if overrides.get('models_dir') is not None:
            self.config.set('output', 'models_dir', overrides['models_dir'])

    def run_search(self) -> Dict[str, Any]:
        """Select the best feature for the cached examples and save it."""
        examples_dir = self.config.data.get('examples_dir')
        if not examples_dir:
            raise ValueError("No examples_dir configured. Set data.examples_dir or pass --examples.")

        self.logger.info("=" * 80)
        self.logger.info("STAGE: SEARCH")
        self.logger.info("=" * 80)

        examples = ExampleSet.load(Path(examples_dir))
        learner = HaarLearner.from_config(self.config, self.registry)
        selected = learner.select(examples)

        persistence = FeaturePersistence(self.models_dir, learner.serializer)
        feature_path = persistence.save_feature(
            selected,
            round_index=self.config.data.get('round'),
            metadata={'search': learner.describe(), 'num_examples': len(examples)}
        )

        return {
            'type': selected.code,
            'rect': selected.rect.as_tuple(),
            'score': selected.score,
            'feature_path': str(feature_path),
        }

    def run_show(self, feature_path: str) -> Dict[str, Any]:
        """Reload a stored feature record."""
        serializer = FeatureSerializer(self.registry)
        selected = FeaturePersistence(self.models_dir, serializer).load_feature(Path(feature_path))
        return {
            'type': selected.code,
            'name': selected.feature_type.name,
            'rect': selected.rect.as_tuple(),
            'record': serializer.dumps(selected).strip(),
        }


def parse_arguments(argv: Optional[List[str]] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Haar-like weak learner feature search',
        formatter_class=argparse.RawTextHelpFormatter
    )

    parser.add_argument(
        'config',
        nargs='?',
        default='config.yaml',
        help='Path to configuration YAML file (default: config.yaml)'
    )

    parser.add_argument(
        '--ftypes',
        type=str,
        default=None,
        help='List of Haar-like feature types, written back to back:\n'
             '  2v: 2 blocks vertical feature\n'
             '  2h: 2 blocks horizontal feature\n'
             '  3v: 3 blocks vertical feature\n'
             '  3h: 3 blocks horizontal feature\n'
             '  4q: 4 blocks squared feature\n'
             'Example: --ftypes 2v2h3v3h (default: all of them)'
    )

    parser.add_argument(
        '--csample',
        nargs=2,
        metavar=('OPT', 'VALUE'),
        default=None,
        help='Sample random configurations instead of trying all of them:\n'
             '  num <n>: number of configurations per type per round\n'
             '  time <sec>: seconds spent per type per round'
    )

    parser.add_argument('--seed', type=int, default=None, help='Seed of the random sampling')

    parser.add_argument('--iisize', type=str, default=None,
                        help='Size of the integral image representation, e.g. 128x64')

    parser.add_argument('--examples', dest='examples_dir', default=None,
                        help='Directory of a cached example set')

    parser.add_argument('--output', dest='models_dir', default=None,
                        help='Directory where selected features are saved')

    parser.add_argument('--show', metavar='FEATURE_FILE', default=None,
                        help='Reload and print a saved feature instead of searching')

    parser.add_argument('--verbose', action='store_true', help='Enable verbose logging')

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_arguments(argv)

    try:
        pipeline = HaarSearchPipeline(
            args.config,
            overrides={
                'ftypes': args.ftypes,
                'csample': args.csample,
                'seed': args.seed,
                'iisize': args.iisize,
                'examples_dir': args.examples_dir,
                'models_dir': args.models_dir,
            },
            verbose=args.verbose
        )

        if args.show:
            result = pipeline.run_show(args.show)
        else:
            result = pipeline.run_search()

        print("=" * 80)
        for key, value in result.items():
            print(f"  {key}: {value}")
        print("=" * 80)
        return 0

    except KeyboardInterrupt:
        print("\nSearch interrupted by user")
        return 1

    except Exception as e:
        print(f"\nSearch failed: {e}")
        logging.exception("Full error trace:")
        return 1
    finally:
        logging.shutdown()


if __name__ == "__main__":
    sys.exit(main())
