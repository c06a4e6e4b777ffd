"""Command line interface for the Docbridge translator."""

from __future__ import annotations

import argparse
import logging
import pathlib
import re
import sys
from typing import Iterable, Optional

from .clients import build_client
from .configuration import get_settings
from .errors import (
    DocbridgeError,
    OverwriteRefusedError,
    TranslationProviderConfigurationError,
)
from .handlers import RunRedistribution
from .router import resolve_format
from .structures import DocumentFormat, SourceDocument
from .translator import DocumentTranslator, TranslationReport, TranslatorOptions


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docbridge",
        description=(
            "Translate Word, PowerPoint, PDF and plain-text documents while "
            "preserving their structure."
        ),
    )
    parser.add_argument("input_file", help="Path to the document to translate.")
    parser.add_argument(
        "-t",
        "--target-language",
        required=True,
        help="Destination language (name or ISO-639 code).",
    )
    parser.add_argument(
        "-s",
        "--source-language",
        help="Optional source language hint (name or ISO-639 code).",
    )
    parser.add_argument(
        "-o",
        "--output",
        help="Output file path. Defaults to appending the target language code.",
    )
    parser.add_argument(
        "-p",
        "--provider",
        help="Translation provider: openai, azure_openai or echo (default: configured).",
    )
    parser.add_argument(
        "-m",
        "--model",
        help="Provider-specific model or deployment identifier.",
    )
    parser.add_argument(
        "--format",
        dest="format_tag",
        help="Declared format (MIME type or docx/pptx/pdf/txt). Defaults to the file extension.",
    )
    parser.add_argument(
        "--strategy",
        help="Extraction strategy: markers, paragraphs (Word only), text or pdf-text.",
    )
    parser.add_argument(
        "--redistribution",
        choices=[policy.value for policy in RunRedistribution],
        help="How the paragraphs strategy spreads a translation over runs.",
    )
    parser.add_argument(
        "--pdf-as-text",
        action="store_true",
        help="Write a translated PDF as plain text instead of a new PDF.",
    )
    parser.add_argument(
        "--max-chars",
        type=int,
        help="Maximum characters per chunk for large documents.",
    )
    parser.add_argument(
        "--max-segments",
        type=int,
        help="Maximum segments per chunk for large documents.",
    )
    parser.add_argument(
        "--workers",
        type=int,
        help="Number of concurrent translation calls.",
    )
    parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Allow overwriting the output file if it already exists.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show detailed progress information.",
    )
    parser.add_argument(
        "--debug-provider",
        action="store_true",
        help="Log complete provider requests and responses for troubleshooting.",
    )
    return parser


def sanitise_language_for_filename(language: str) -> str:
    """Generate a filesystem-friendly suffix from a language descriptor."""

    collapsed = re.sub(r"\s+", "-", language.strip())
    ascii_only = collapsed.encode("ascii", "ignore").decode("ascii")
    cleaned = re.sub(r"[^A-Za-z0-9\-]+", "", ascii_only)
    return cleaned or "translated"


def output_extension(document_format: DocumentFormat, pdf_as_text: bool) -> str:
    if document_format is DocumentFormat.PDF and pdf_as_text:
        return DocumentFormat.TEXT.extension
    return document_format.extension


def derive_output_path(input_path: pathlib.Path, language: str, extension: str) -> pathlib.Path:
    addition = sanitise_language_for_filename(language)
    return input_path.with_name(f"{input_path.stem}_{addition}{extension}")


def validate_paths(
    input_path: pathlib.Path,
    output_path: pathlib.Path,
    force_overwrite: bool,
) -> None:
    """Validate input/output path combinations and overwrite policy."""

    if not input_path.exists():
        raise FileNotFoundError(f"Input file not found: {input_path}")
    if not input_path.is_file():
        raise DocbridgeError("Input path must be a file.")
    if input_path.resolve() == output_path.resolve():
        raise OverwriteRefusedError(
            "The output path matches the input document. Refusing to overwrite the source file."
        )
    if output_path.exists() and not force_overwrite:
        raise OverwriteRefusedError(
            "The output file already exists. Rename it or use --force."
        )


def _print_progress(percentage: int, message: str) -> None:
    print(f"[{percentage:3d}%] {message}")


def print_summary(
    report: TranslationReport,
    *,
    input_path: pathlib.Path,
    output_path: pathlib.Path,
    target_language: str,
    source_language: Optional[str],
) -> None:
    """Output a friendly report once processing completes."""

    print("\nTranslation complete.")
    print(f"  Input file:      {input_path}")
    print(f"  Output file:     {output_path}")
    print(f"  Document type:   {report.format.name.lower()} ({report.strategy} strategy)")
    print(f"  Processing mode: {report.mode.name.lower()} ({report.size_category})")
    print(
        "  Segments:        "
        f"{report.translated_segments} translated / {report.total_segments} total "
        f"({report.passthrough_segments} unchanged, {report.fallback_segments} kept original)"
    )
    print(
        f"  Chunks:          {report.total_chunks} "
        f"({report.degraded_chunks} degraded, {report.failed_chunks} failed)"
    )
    if source_language:
        print(f"  Source language: {source_language}")
    print(f"  Target language: {target_language}")
    print(f"  Elapsed time:    {report.elapsed_seconds:.2f} seconds")
    if report.issues:
        print("  Notes:")
        for message in report.error_messages:
            print(f"    - {message}")


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

    input_path = pathlib.Path(args.input_file).expanduser().resolve()
    try:
        document_format = resolve_format(args.format_tag or input_path.suffix)
        extension = output_extension(document_format, args.pdf_as_text)
        output_path = (
            pathlib.Path(args.output).expanduser().resolve()
            if args.output
            else derive_output_path(input_path, args.target_language, extension)
        )
        validate_paths(input_path, output_path, force_overwrite=args.force)

        settings = get_settings()
        client = build_client(
            settings,
            provider=args.provider,
            model=args.model,
            debug=True if args.debug_provider else None,
        )
        options = TranslatorOptions.from_settings(
            settings,
            max_chunk_segments=args.max_segments,
            max_chunk_characters=args.max_chars,
            max_workers=args.workers,
            strategy=args.strategy,
            redistribution=(
                RunRedistribution(args.redistribution) if args.redistribution else None
            ),
            pdf_as_text=args.pdf_as_text or None,
        )

        source = SourceDocument(data=input_path.read_bytes(), format_tag=document_format.value)
        result = DocumentTranslator(client, options).translate(
            source,
            args.source_language,
            args.target_language,
            progress=_print_progress if args.verbose else None,
        )
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(result.output.data)
    except (FileNotFoundError, OverwriteRefusedError) as exc:
        print(exc)
        return 1
    except TranslationProviderConfigurationError as exc:
        print(exc)
        return 1
    except DocbridgeError as exc:
        print(exc)
        return 1
    except ValueError as exc:
        print(f"Invalid option: {exc}")
        return 1
    except KeyboardInterrupt:
        print("Translation interrupted by user.")
        return 2

    print_summary(
        result.report,
        input_path=input_path,
        output_path=output_path,
        target_language=args.target_language,
        source_language=args.source_language,
    )
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
