"""
Command Line Interface for the media library.
"""

import argparse
import logging
import urllib3
from typing import List, Optional

from .attachment_record import AttachmentRecord
from .engine import AttachmentEngine
from .errors import MediaLibraryError
from .local_storage import LocalConfig, LocalStorage
from .path_builder import PathBuilder
from .s3_config import S3Config
from .s3_storage import S3Storage
from .style_registry import StyleRegistry


def setup_logging(verbose: bool) -> logging.Logger:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    logging.getLogger('boto3').setLevel(logging.WARNING)
    logging.getLogger('botocore').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('PIL').setLevel(logging.WARNING)

    return logging.getLogger('medialib')


def get_s3_config(args: argparse.Namespace) -> S3Config:
    """Get S3 configuration from environment and CLI overrides."""
    config = S3Config.from_env()

    if getattr(args, 's3_endpoint', None):
        config.endpoint = args.s3_endpoint
    if getattr(args, 's3_bucket', None):
        config.bucket = args.s3_bucket
    if getattr(args, 's3_prefix', None):
        config.prefix = args.s3_prefix
    if getattr(args, 's3_access_key', None):
        config.access_key = args.s3_access_key
    if getattr(args, 's3_secret_key', None):
        config.secret_key = args.s3_secret_key

    return config


def get_storage(args: argparse.Namespace, logger: logging.Logger):
    """
    Get the storage backend selected by the arguments.

    Raises:
        ValueError: If the selected configuration is invalid
    """
    local_root = getattr(args, 'local_root', None)

    if local_root:
        config = LocalConfig(root_path=local_root, base_url=args.base_url)
        errors = config.validate()
        if errors:
            for error in errors:
                logger.error(error)
            raise ValueError("Local configuration invalid")
        logger.debug(f"Storage: Local filesystem at {config.root_path}")
        return LocalStorage(config, logger)

    config = get_s3_config(args)
    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(error)
        raise ValueError("S3 configuration invalid")

    if not config.verify_ssl:
        urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
    logger.debug(f"Storage: S3 {config.endpoint} bucket {config.bucket}/{config.prefix}")
    return S3Storage(config, logger)


def build_engine(args: argparse.Namespace, logger: logging.Logger) -> AttachmentEngine:
    registry = StyleRegistry.load(args.styles)
    storage = get_storage(args, logger)
    return AttachmentEngine(registry, storage, max_workers=args.workers, logger=logger)


def load_record(args: argparse.Namespace) -> AttachmentRecord:
    """Load the record file, or start an empty one for a new upload."""
    try:
        return AttachmentRecord.load(args.record)
    except FileNotFoundError:
        attachment_id = getattr(args, 'id', None)
        if not attachment_id:
            raise
        return AttachmentRecord(attachment_id=attachment_id)


def read_payload(value: str) -> str:
    """Payload text given inline or as @file."""
    if value.startswith('@'):
        with open(value[1:], 'r') as f:
            return f.read()
    return value


def cmd_upload(args: argparse.Namespace) -> int:
    """Execute upload command."""
    logger = setup_logging(args.verbose)

    try:
        engine = build_engine(args, logger)
        record = load_record(args)
    except FileNotFoundError as e:
        logger.error(f"File not found: {e.filename} (pass --id to create a new record)")
        return 1
    except ValueError as e:
        logger.error(str(e))
        return 1

    if args.id and record.attachment_id != args.id:
        logger.warning(f"Record already has id {record.attachment_id}, ignoring --id {args.id}")

    try:
        with open(args.file, 'rb') as f:
            result = engine.scan(record, f)
    except FileNotFoundError:
        logger.error(f"Upload not found: {args.file}")
        return 1
    except MediaLibraryError as e:
        logger.error(f"Upload failed: {e}")
        return 1

    record.save(args.record)
    logger.info(f"Stored {len(result.written)} file(s), removed {len(result.orphaned)}")
    print(engine.url(record))
    return 0


def cmd_crop(args: argparse.Namespace) -> int:
    """Execute crop command."""
    logger = setup_logging(args.verbose)

    try:
        engine = build_engine(args, logger)
        record = AttachmentRecord.load(args.record)
        payload = read_payload(args.payload)
    except FileNotFoundError as e:
        logger.error(f"File not found: {e.filename}")
        return 1
    except ValueError as e:
        logger.error(str(e))
        return 1

    try:
        result = engine.scan(record, payload)
    except MediaLibraryError as e:
        logger.error(f"Crop failed: {e}")
        return 1

    record.save(args.record)
    for style in result.styles:
        print(f"{style}\t{engine.url(record, style)}")
    return 0


def cmd_url(args: argparse.Namespace) -> int:
    """Execute url command."""
    logger = setup_logging(args.verbose)

    try:
        record = AttachmentRecord.load(args.record)
    except FileNotFoundError:
        logger.error(f"Record not found: {args.record}")
        return 1

    registry = StyleRegistry.load(args.styles) if args.styles else None
    path = PathBuilder.url_for(record, *(args.style or []), registry=registry)

    if args.path_only:
        print(path)
    else:
        try:
            storage = get_storage(args, logger)
        except ValueError:
            return 1
        print(storage.public_url(path) if path else '')
    return 0 if path else 1


def cmd_paths(args: argparse.Namespace) -> int:
    """Execute paths command."""
    logger = setup_logging(args.verbose)

    try:
        record = AttachmentRecord.load(args.record)
    except FileNotFoundError:
        logger.error(f"Record not found: {args.record}")
        return 1

    for path in record.list_paths():
        print(path)
    return 0


def cmd_delete(args: argparse.Namespace) -> int:
    """Execute delete command."""
    logger = setup_logging(args.verbose)

    try:
        engine = build_engine(args, logger)
        record = AttachmentRecord.load(args.record)
    except FileNotFoundError as e:
        logger.error(f"File not found: {e.filename}")
        return 1
    except ValueError as e:
        logger.error(str(e))
        return 1

    count = len(record.list_paths())
    failures = engine.delete_all(record)
    record.save(args.record)
    logger.info(f"Deleted {count - len(failures)} of {count} file(s)")
    return 0 if not failures else 1


def add_storage_arguments(parser: argparse.ArgumentParser) -> None:
    """Add storage configuration arguments to a parser."""
    local_group = parser.add_argument_group('Local Storage')
    local_group.add_argument('--local-root', metavar='PATH',
                             help='Use local filesystem instead of S3 (e.g., ./public)')
    local_group.add_argument('--base-url', default='/system',
                             help='URL prefix for local files (default: /system)')

    s3_group = parser.add_argument_group('S3 Storage')
    s3_group.add_argument('--s3-endpoint', help='Override S3_ENDPOINT')
    s3_group.add_argument('--s3-bucket', help='Override S3_BUCKET')
    s3_group.add_argument('--s3-prefix', help='Override S3_PREFIX')
    s3_group.add_argument('--s3-access-key', help='Override S3_ACCESS_KEY')
    s3_group.add_argument('--s3-secret-key', help='Override S3_SECRET_KEY')


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog='medialib',
        description='Derive and store styled variants of uploaded images',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Workflow:
  1. Upload: python -m medialib upload logo.png -r avatar.json --id users/1/avatar -s styles.json --local-root public
  2. Crop:   python -m medialib crop '{"crop": true, "cropOptions": {...}}' -r avatar.json -s styles.json --local-root public
  3. URL:    python -m medialib url -r avatar.json --style big --local-root public

Storage options:
  Use --local-root for local filesystem, or S3 environment variables for S3.
"""
    )

    parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose logging')

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    upload_parser = subparsers.add_parser('upload', help='Store a new original and derive all styles')
    upload_parser.add_argument('file', help='Image file to upload')
    upload_parser.add_argument('-r', '--record', required=True, help='Record JSON file')
    upload_parser.add_argument('-s', '--styles', required=True, help='Style registry JSON file')
    upload_parser.add_argument('--id', help='Attachment id for a new record')
    upload_parser.add_argument('-w', '--workers', type=int, default=4, help='Parallel style workers')
    upload_parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose logging')
    add_storage_arguments(upload_parser)

    crop_parser = subparsers.add_parser('crop', help='Apply crop rectangles to styles')
    crop_parser.add_argument('payload', help='Crop payload JSON, or @file')
    crop_parser.add_argument('-r', '--record', required=True, help='Record JSON file')
    crop_parser.add_argument('-s', '--styles', required=True, help='Style registry JSON file')
    crop_parser.add_argument('-w', '--workers', type=int, default=4, help='Parallel style workers')
    crop_parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose logging')
    add_storage_arguments(crop_parser)

    url_parser = subparsers.add_parser('url', help='Print the URL of the original or a style')
    url_parser.add_argument('-r', '--record', required=True, help='Record JSON file')
    url_parser.add_argument('-s', '--styles', help='Style registry JSON file')
    url_parser.add_argument('--style', action='append', help='Style(s) to look up, first match wins')
    url_parser.add_argument('--path-only', action='store_true', help='Print the storage path instead of a URL')
    url_parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose logging')
    add_storage_arguments(url_parser)

    paths_parser = subparsers.add_parser('paths', help='List every stored path of a record')
    paths_parser.add_argument('-r', '--record', required=True, help='Record JSON file')
    paths_parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose logging')

    delete_parser = subparsers.add_parser('delete', help='Delete every stored file of a record')
    delete_parser.add_argument('-r', '--record', required=True, help='Record JSON file')
    delete_parser.add_argument('-s', '--styles', required=True, help='Style registry JSON file')
    delete_parser.add_argument('-w', '--workers', type=int, default=4, help='Parallel style workers')
    delete_parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose logging')
    add_storage_arguments(delete_parser)

    return parser


def main(args: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return 1

    if parsed_args.command == 'upload':
        return cmd_upload(parsed_args)
    elif parsed_args.command == 'crop':
        return cmd_crop(parsed_args)
    elif parsed_args.command == 'url':
        return cmd_url(parsed_args)
    elif parsed_args.command == 'paths':
        return cmd_paths(parsed_args)
    elif parsed_args.command == 'delete':
        return cmd_delete(parsed_args)

    return 1
