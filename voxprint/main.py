"""
Command line entry point of the voxprint speaker identification system
"""

import argparse
import logging
import sys
import time
from pathlib import Path

from tqdm import tqdm

from voxprint.core.exceptions import VoxprintError
from voxprint.data.voice_print_store import VoicePrintStore
from voxprint.evaluation.metrics import IdentificationMetrics
from voxprint.utils.config import load_config
from voxprint.utils.file_utils import find_files_by_extension
from voxprint.utils.logger_config import configure_external_loggers, setup_colored_logger


AUDIO_EXTENSIONS = ['.wav', '.flac', '.ogg', '.mp3']


def setup_argument_parser():
    """Command line argument parser"""
    parser = argparse.ArgumentParser(
        description="voxprint: text-independent speaker identification",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  voxprint --enroll alice a1.wav a2.wav      # Enroll a speaker
  voxprint --merge alice a3.wav              # Add samples to a speaker
  voxprint --identify unknown.wav            # Identify a voice
  voxprint --evaluate test_data --plot cm.png
        """
    )

    commands = parser.add_argument_group("commands")
    commands.add_argument('--enroll', nargs='+', metavar=('NAME', 'FILE'),
                          help='Enroll a new speaker (first file creates the print, the rest are merged)')
    commands.add_argument('--merge', nargs='+', metavar=('NAME', 'FILE'),
                          help='Merge more samples into an enrolled speaker')
    commands.add_argument('--identify', type=str, metavar='FILE_OR_DIR',
                          help='Identify the speaker of an audio file or of every file in a folder')
    commands.add_argument('--evaluate', type=str, metavar='DIR',
                          help='Identify every file in DIR/<speaker>/ and report accuracy')
    commands.add_argument('--list', action='store_true',
                          help='List enrolled speakers')
    commands.add_argument('--freeze-model', type=str, metavar='NAME',
                          help="Freeze the universal model to a copy of NAME's voice print")

    parser.add_argument('--database', type=str, default='data/voice_prints', metavar='DIR',
                        help='Voice print database folder (default: data/voice_prints)')
    parser.add_argument('--sample-rate', type=float, default=None,
                        help='Sample rate of every audio file (default: from config)')
    parser.add_argument('--config', type=str, default=None, metavar='FILE',
                        help='JSON configuration file')
    parser.add_argument('--top', type=int, default=3, metavar='N',
                        help='Number of ranked matches to show (default: 3)')
    parser.add_argument('--report', type=str, default=None, metavar='FILE',
                        help='Save the evaluation report as JSON')
    parser.add_argument('--plot', type=str, default=None, metavar='FILE',
                        help='Save the evaluation confusion matrix as an image')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Verbose output')

    return parser


def split_name_and_files(parser, values, option):
    if len(values) < 2:
        parser.error(f"{option} expects a speaker name followed by at least one audio file")
    return values[0], values[1:]


def enroll(engine, name, files, logger):
    """Create a print from the first file and merge the others"""
    first, rest = files[0], files[1:]
    engine.create_voice_print_from_file(name, first)
    for file in tqdm(rest, desc=f"Enrolling {name}", unit="file", disable=not rest):
        engine.merge_voice_sample_from_file(name, file)
    logger.info(f"Speaker {name} enrolled from {len(files)} file(s)")


def merge(engine, name, files, logger):
    for file in tqdm(files, desc=f"Merging into {name}", unit="file"):
        engine.merge_voice_sample_from_file(name, file)
    logger.info(f"{len(files)} file(s) merged into {name} (weight={engine.get_voice_print(name).weight})")


def format_matches(matches, top):
    return ", ".join(f"{match.key} ({match.likelihood}%)" for match in matches[:top])


def identify(engine, target, top, logger):
    audio_path = Path(target)
    if not audio_path.exists():
        raise FileNotFoundError(f"File or folder not found: {audio_path}")

    if audio_path.is_dir():
        audio_files = find_files_by_extension(audio_path, AUDIO_EXTENSIONS, recursive=False)
        if not audio_files:
            logger.info(f"No audio files to identify in {audio_path}")
            return
        results = []
        for file in tqdm(audio_files, desc="Identifying", unit="file"):
            results.append((file, engine.identify_file(file)))
        for file, matches in results:
            logger.info(f"  {file.name}: {format_matches(matches, top)}")
    else:
        matches = engine.identify_file(audio_path)
        best = matches[0]
        logger.info(f"Result: {best.key} (likelihood: {best.likelihood}%, distance: {best.distance:.4f})")
        logger.info(f"Top matches: {format_matches(matches, top)}")


def evaluate(engine, data_dir, report_file, plot_file, logger):
    """Identify every file in data_dir/<speaker>/ and summarize the accuracy"""
    data_path = Path(data_dir)
    if not data_path.is_dir():
        raise FileNotFoundError(f"Evaluation folder not found: {data_path}")

    samples = []
    for speaker_dir in sorted(p for p in data_path.iterdir() if p.is_dir()):
        for file in find_files_by_extension(speaker_dir, AUDIO_EXTENSIONS):
            samples.append((speaker_dir.name, file))

    if not samples:
        logger.warning(f"No labeled audio files found in {data_path}")
        return

    metrics = IdentificationMetrics()
    for speaker, file in tqdm(samples, desc="Evaluating", unit="file"):
        start_time = time.time()
        matches = engine.identify_file(file)
        metrics.add_result(speaker, matches, (time.time() - start_time) * 1000)

    metrics.print_summary()
    if report_file:
        metrics.save_report(report_file)
    if plot_file:
        metrics.plot_confusion_matrix(plot_file)


def list_users(store):
    users = store.get_all_users_list()
    if not users:
        print("No speakers enrolled")
        return
    print(f"{'Name':<24} {'Samples':>8}  Updated")
    for user in users:
        print(f"{user['name']:<24} {user['weight']:>8}  {user['updated_at']}")


def main(argv=None):
    """Main program function"""
    parser = setup_argument_parser()
    args = parser.parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logger = setup_colored_logger('voxprint', level=log_level)
    configure_external_loggers()

    try:
        config = load_config(args.config, {'sample_rate': args.sample_rate})
        store = VoicePrintStore(args.database)

        if args.list:
            list_users(store)
            return 0

        if not any([args.enroll, args.merge, args.identify, args.evaluate, args.freeze_model]):
            parser.print_help()
            return 1

        engine = store.load_engine(config['sample_rate'], config=config)

        if args.enroll:
            name, files = split_name_and_files(parser, args.enroll, '--enroll')
            enroll(engine, name, files, logger)
            store.save_engine(engine)

        elif args.merge:
            name, files = split_name_and_files(parser, args.merge, '--merge')
            merge(engine, name, files, logger)
            store.save_engine(engine)

        elif args.identify:
            identify(engine, args.identify, args.top, logger)

        elif args.evaluate:
            evaluate(engine, args.evaluate, args.report, args.plot, logger)

        elif args.freeze_model:
            engine.set_universal_model(engine.get_voice_print(args.freeze_model))
            store.save_engine(engine)
            logger.info(f"Universal model frozen to the voice print of {args.freeze_model}")

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 1
    except (VoxprintError, OSError, ValueError, KeyError) as e:
        logger.error(f"Error: {e}")
        if args.verbose:
            logger.exception("Details")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
