import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from tqdm import tqdm

from pdf_document import PdfTextError, read_file_bytes
from pdf_page_text import ExtractorConfig, PageExtraction, extract_pdf_page, iter_pdf_pages

# Load environment variables if needed
load_dotenv()


def extract_document(data: bytes, page: Optional[int], cfg: ExtractorConfig) -> List[PageExtraction]:
    if page is not None:
        return [extract_pdf_page(data, page, cfg)]
    return list(iter_pdf_pages(data, cfg))


def write_outputs(out_dir: Path, stem: str, results: List[PageExtraction]) -> Path:
    out_txt = out_dir / f"{stem}.txt"
    out_txt.write_text("\f".join(r.text for r in results), encoding="utf-8")
    report = [r.to_dict() for r in results]
    (out_dir / f"{stem}.report.json").write_text(json.dumps(report, ensure_ascii=False, indent=2), encoding="utf-8")
    return out_txt


def _raised_flags(results: List[PageExtraction]) -> List[str]:
    seen: List[str] = []
    for r in results:
        for name, on in r.flags.items():
            if on and name not in seen:
                seen.append(name)
    return seen


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Reading-order text extraction for PDF pages")

    default_input = os.path.join(os.getcwd(), 'input')
    default_output = os.path.join(os.getcwd(), 'output')

    parser.add_argument('--input', '-i', default=default_input, help="Input folder containing PDFs")
    parser.add_argument('--output', '-o', default=default_output, help="Output folder for text and reports")
    parser.add_argument('--single', '-s', default=None, help="Process a single PDF file (overrides --input)")
    parser.add_argument('--page', '-p', type=int, default=None, help="1-based page to extract (default: all pages)")
    parser.add_argument('--workspace', '-w', default=os.environ.get("PDF_TEXT_WORKSPACE"),
                        help="Restrict file access to this folder (env: PDF_TEXT_WORKSPACE)")
    parser.add_argument('--json', action='store_true', help="Print page results as JSON instead of writing files")
    parser.add_argument('--verbose', '-v', action='store_true', help="Debug logging")

    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    # keep stdout clean for --json
    status = sys.stderr if args.json else sys.stdout

    try:
        cfg = ExtractorConfig.from_env()
    except ValueError as e:
        print(f"ERROR: {e}", file=status)
        return 2

    if args.single:
        pdf_files = [args.single]
    else:
        if not os.path.isdir(args.input):
            print(f"ERROR: Input folder not found: {args.input}", file=status)
            return 2
        pdf_files = sorted(os.path.join(args.input, f) for f in os.listdir(args.input) if f.lower().endswith('.pdf'))
        print(f"Found {len(pdf_files)} PDF files", file=status)

    out_dir = Path(args.output)
    if not args.json:
        out_dir.mkdir(parents=True, exist_ok=True)

    failed = 0
    for pdf_path in tqdm(pdf_files, desc="Extracting PDFs", disable=len(pdf_files) < 2):
        try:
            data = read_file_bytes(pdf_path, args.workspace)
            results = extract_document(data, args.page, cfg)
        except (PdfTextError, OSError) as e:
            failed += 1
            print(f"[FAIL] {pdf_path}: {e}", file=status)
            continue

        if args.json:
            print(json.dumps([r.to_dict() for r in results], ensure_ascii=False, indent=2))
            continue

        out = write_outputs(out_dir, Path(pdf_path).stem, results)
        flags = _raised_flags(results)
        print(f"[OK] {out} ({len(results)} pages{', flags: ' + ', '.join(flags) if flags else ''})")

    print(f"[DONE] {len(pdf_files) - failed}/{len(pdf_files)} succeeded", file=status)
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
