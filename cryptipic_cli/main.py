#!/usr/bin/env python3
"""
CryptiPic Command Line Interface

Hide and recover text in PNG images from the shell.

Usage:
    cryptipic encode [OPTIONS]
    cryptipic decode [OPTIONS]
    cryptipic analyze [OPTIONS]
    cryptipic capacity [OPTIONS]
    cryptipic config [OPTIONS]
    cryptipic --version
    cryptipic --help
"""

import argparse
import json
import logging
import sys
from dataclasses import replace
from typing import List, Optional

from cryptipic_core import __version__
from cryptipic_core.codec import (
    DEFAULT_OPTIONS,
    AuditCollector,
    DecoyMessage,
    JsonLinesAuditCollector,
    LoggingAuditCollector,
    SecurityValidator,
    SteganographyCodec,
    SteganographyOptions,
    estimate_capacity,
    load_options,
    save_options,
)
from cryptipic_core.crypto import EncryptionAlgorithm
from cryptipic_core.errors import CryptiPicError
from cryptipic_core.stego import Algorithm, analyze_image, analyze_message, load_rgba, save_png, select_strategy
from cryptipic_core.stego.chaotic import ChaoticMapType


logger = logging.getLogger(__name__)


def parse_decoy(value: str) -> DecoyMessage:
    """Parse ``MESSAGE:PASSWORD:INDEX``; the message itself may contain colons."""
    parts = value.rsplit(":", 2)
    if len(parts) != 3 or not parts[2].isdigit():
        raise argparse.ArgumentTypeError(f"Decoy must look like MESSAGE:PASSWORD:INDEX, got {value!r}")
    message, password, index = parts
    try:
        return DecoyMessage(message=message, password=password or None, index=int(index))
    except CryptiPicError as exc:
        raise argparse.ArgumentTypeError(exc.message) from exc


class CryptiPicCLI:
    """Main CLI application for CryptiPic."""

    def run(self, args: List[str]) -> int:
        """Run the CLI with given arguments."""
        parser = self.create_parser()
        parsed = parser.parse_args(args)

        if parsed.verbose:
            logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

        if hasattr(parsed, "func"):
            try:
                return parsed.func(parsed)
            except (CryptiPicError, OSError) as e:
                print(f"Error: {e}", file=sys.stderr)
                return 1
        else:
            parser.print_help()
            return 0

    def create_parser(self) -> argparse.ArgumentParser:
        """Create the argument parser."""
        parser = argparse.ArgumentParser(
            prog="cryptipic",
            description="CryptiPic steganography CLI",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="""
Examples:
    cryptipic encode --carrier in.png --output out.png --message "HELLO"
    cryptipic encode -c in.png -o out.png -m "TopSecret" -p 'Str0ng!Pass' --decoy 'Cover story:Dec0y!Pass:1'
    cryptipic decode --carrier out.png --password 'Str0ng!Pass'
    cryptipic analyze --carrier in.png
    cryptipic capacity --carrier in.png --capacity 3
    cryptipic config --output settings.json --algorithm chaotic-lsb
            """
        )

        parser.add_argument(
            "--version",
            action="version",
            version=f"CryptiPic v{__version__}"
        )
        parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

        subparsers = parser.add_subparsers(title="commands", dest="command")

        self.add_encode_command(subparsers)
        self.add_decode_command(subparsers)
        self.add_analyze_command(subparsers)
        self.add_capacity_command(subparsers)
        self.add_config_command(subparsers)

        return parser

    @staticmethod
    def add_option_arguments(cmd) -> None:
        """Arguments that override the settings file."""
        cmd.add_argument("--config", help="JSON settings file")
        cmd.add_argument("--algorithm", "-a", choices=[a.value for a in Algorithm],
                         help="Embedding algorithm")
        cmd.add_argument("--capacity", type=int, help="Bits per position (1-8)")
        cmd.add_argument("--encryption", choices=[e.value for e in EncryptionAlgorithm],
                         help="Cipher used with a password")
        cmd.add_argument("--chaotic-map", choices=[m.value for m in ChaoticMapType],
                         help="Chaotic map for position generation")

    def add_encode_command(self, subparsers):
        """Add encode command to parser."""
        cmd = subparsers.add_parser("encode", help="Hide a message in an image")
        cmd.add_argument("--carrier", "-c", required=True, help="Carrier image")
        cmd.add_argument("--output", "-o", required=True, help="Output PNG")
        cmd.add_argument("--message", "-m", required=True, help="Message to hide")
        cmd.add_argument("--password", "-p", help="Encrypt the message with this password")
        cmd.add_argument("--decoy", action="append", type=parse_decoy, default=[],
                         metavar="MESSAGE:PASSWORD:INDEX", help="Decoy message (repeatable, up to 3)")
        cmd.add_argument("--audit-log", help="Append audit events to this JSON Lines file")
        self.add_option_arguments(cmd)
        cmd.set_defaults(func=self.handle_encode)

    def add_decode_command(self, subparsers):
        """Add decode command to parser."""
        cmd = subparsers.add_parser("decode", help="Recover a hidden message")
        cmd.add_argument("--carrier", "-c", required=True, help="Stego image")
        cmd.add_argument("--password", "-p", help="Password of the message or decoy")
        cmd.add_argument("--decoy-index", type=int, choices=[1, 2, 3], help="Open a decoy slot")
        cmd.add_argument("--audit-log", help="Append audit events to this JSON Lines file")
        cmd.add_argument("--json", action="store_true", help="Output as JSON")
        cmd.add_argument("--config", help="JSON settings file (chaotic settings must match encode)")
        cmd.set_defaults(func=self.handle_decode)

    def add_analyze_command(self, subparsers):
        """Add analyze command to parser."""
        cmd = subparsers.add_parser("analyze", help="Image statistics and adaptive choice")
        cmd.add_argument("--carrier", "-c", required=True, help="Carrier image")
        cmd.add_argument("--message", "-m", default="", help="Message the choice is made for")
        cmd.add_argument("--json", action="store_true", help="Output as JSON")
        cmd.set_defaults(func=self.handle_analyze)

    def add_capacity_command(self, subparsers):
        """Add capacity command to parser."""
        cmd = subparsers.add_parser("capacity", help="Payload capacity per algorithm")
        cmd.add_argument("--carrier", "-c", required=True, help="Carrier image")
        cmd.add_argument("--capacity", type=int, default=DEFAULT_OPTIONS.capacity,
                         help="Bits per position for multi-bit algorithms")
        cmd.add_argument("--json", action="store_true", help="Output as JSON")
        cmd.set_defaults(func=self.handle_capacity)

    def add_config_command(self, subparsers):
        """Add config command to parser."""
        cmd = subparsers.add_parser("config", help="Write a settings file")
        cmd.add_argument("--output", "-o", required=True, help="Settings file to write")
        self.add_option_arguments(cmd)
        cmd.set_defaults(func=self.handle_config)

    # Helpers

    @staticmethod
    def build_options(args) -> SteganographyOptions:
        options = load_options(args.config) if getattr(args, "config", None) else DEFAULT_OPTIONS
        if getattr(args, "algorithm", None):
            options = options.with_changes(algorithm=args.algorithm)
        if getattr(args, "capacity", None) is not None:
            options = options.with_changes(capacity=args.capacity)
        if getattr(args, "encryption", None):
            options = options.with_changes(
                encryption=replace(options.encryption, algorithm=args.encryption, quantum_resistant=False)
            )
        if getattr(args, "chaotic_map", None):
            options = options.with_changes(chaotic=replace(options.chaotic, map_type=args.chaotic_map))
        return options

    @staticmethod
    def build_codec(args) -> SteganographyCodec:
        audit: AuditCollector
        if args.audit_log:
            audit = JsonLinesAuditCollector(args.audit_log)
        else:
            audit = LoggingAuditCollector()
        return SteganographyCodec(audit=audit)

    # Command handlers

    def handle_encode(self, args):
        """Handle encode command."""
        options = self.build_options(args)
        if args.password:
            report = SecurityValidator.validate_password(args.password)
            for error in report.errors:
                print(f"Warning: {error}", file=sys.stderr)

        pixels = load_rgba(args.carrier)
        codec = self.build_codec(args)
        if args.decoy:
            stego = codec.encode_with_decoys(pixels, args.message, args.password, args.decoy, options)
        else:
            stego = codec.encode(pixels, args.message, args.password, options)

        save_png(stego, args.output)
        print(f"Message hidden with {options.algorithm.value} -> {args.output}")
        if args.decoy:
            print(f"Decoys embedded: {', '.join(str(d.index) for d in args.decoy)}")
        return 0

    def handle_decode(self, args):
        """Handle decode command."""
        options = load_options(args.config) if args.config else DEFAULT_OPTIONS
        pixels = load_rgba(args.carrier)
        result = self.build_codec(args).decode(pixels, args.password, args.decoy_index, options)

        if args.json:
            print(json.dumps({
                "status": result.status.value,
                "message": result.message,
                "algorithm": result.algorithm.value,
                "classification": result.classification,
                "decoy_index": result.decoy_index,
                "metadata": result.metadata.to_dict(),
            }, indent=2))
        elif result.encrypted_pending:
            print("Encrypted message found. Supply --password to decrypt it.")
        else:
            print(result.message)
        return 0

    def handle_analyze(self, args):
        """Handle analyze command."""
        pixels = load_rgba(args.carrier)
        image = analyze_image(pixels)
        message = analyze_message(args.message)
        selection = select_strategy(image, message)

        report = {
            "width": int(pixels.shape[1]),
            "height": int(pixels.shape[0]),
            "entropy": round(image.entropy, 4),
            "edge_density": round(image.edge_density, 4),
            "capacity_estimate_bits": int(image.capacity_estimate),
            "adaptive_variant": selection.variant.value,
            "adaptive_capacity": selection.capacity,
            "adaptive_redundancy": selection.redundancy,
        }
        if args.json:
            print(json.dumps(report, indent=2))
        else:
            for key, value in report.items():
                print(f"{key:24} {value}")
        return 0

    def handle_capacity(self, args):
        """Handle capacity command."""
        pixels = load_rgba(args.carrier)
        options = DEFAULT_OPTIONS.with_changes(capacity=args.capacity)
        capacities = estimate_capacity(pixels, options)
        if args.json:
            print(json.dumps(capacities, indent=2))
        else:
            print(f"{'algorithm':20} max framed payload (bytes)")
            for name, size in capacities.items():
                print(f"{name:20} {size}")
        return 0

    def handle_config(self, args):
        """Handle config command."""
        path = save_options(self.build_options(args), args.output)
        print(f"Settings written to {path}")
        return 0


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    cli = CryptiPicCLI()
    sys.exit(cli.run(sys.argv[1:] if argv is None else argv))


if __name__ == "__main__":
    main()
