"""
Curriculum PDF Ingestion with Vision OCR and Auto-Tagging

This script:
1. Tracks processed files to avoid reprocessing
2. Only processes new or modified PDFs
3. Extracts page text with the vision model
4. Auto-tags each document with topic keys and grades
5. Adds the documents to curriculum.json
6. Supports downloading PDFs from URLs

Usage:
    python src/ingest_curriculum_pdfs.py [--url URL ...] [--pdf-dir DIR] [--curriculum PATH]
"""

import os
import sys
import glob
import json
import asyncio
import hashlib
import argparse
from datetime import datetime
from typing import Dict, List, Optional

import requests
from dotenv import load_dotenv

# Add the socratic_science_tutor package to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'socratic_science_tutor', 'src'))

from socratic_science_tutor.ai_gateway import create_gateway
from socratic_science_tutor.curriculum import JsonCurriculumStore
from socratic_science_tutor.curriculum_admin import CurriculumAdmin
from socratic_science_tutor.errors import TutorError
from socratic_science_tutor.ocr import PdfTextExtractor

load_dotenv()

DATA_DIR = os.path.join(os.path.dirname(__file__), "../data")
PDF_DIR = os.path.join(DATA_DIR, "pdfs")
CURRICULUM_PATH = os.getenv("CURRICULUM_JSON_PATH", os.path.join(DATA_DIR, "curriculum.json"))
PROCESSED_FILES_LOG = os.path.join(DATA_DIR, "processed_pdfs.json")


def get_file_hash(file_path: str) -> str:
    """MD5 of a file, used to notice modified PDFs."""
    hash_md5 = hashlib.md5()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(4096), b""):
            hash_md5.update(chunk)
    return hash_md5.hexdigest()


def load_processed_files(log_path: str = PROCESSED_FILES_LOG) -> Dict[str, dict]:
    if os.path.exists(log_path):
        with open(log_path, 'r') as f:
            return json.load(f)
    return {}


def save_processed_files(processed_files: Dict[str, dict], log_path: str = PROCESSED_FILES_LOG):
    os.makedirs(os.path.dirname(log_path), exist_ok=True)
    with open(log_path, 'w') as f:
        json.dump(processed_files, f, indent=2)


def get_new_files(pdf_files: List[str], processed_files: Dict[str, dict]) -> List[str]:
    """Files that are new or whose content changed since the last run."""
    new_files = []
    for pdf_path in pdf_files:
        filename = os.path.basename(pdf_path)
        if filename not in processed_files or processed_files[filename]['hash'] != get_file_hash(pdf_path):
            new_files.append(pdf_path)
            print(f"   📄 New/Modified: {filename}")
        else:
            print(f"   ✓ Already processed: {filename}")
    return new_files


def download_pdf_from_url(url: str, save_dir: str) -> Optional[str]:
    """
    Download a PDF from a URL.

    Returns:
        Path to the downloaded file, or None if the download failed
    """
    try:
        print(f"   📥 Downloading from: {url}")
        response = requests.get(url, timeout=30, stream=True)
        response.raise_for_status()

        filename = os.path.basename(url.split("?")[0]) or "downloaded.pdf"
        if not filename.lower().endswith('.pdf'):
            filename += '.pdf'

        os.makedirs(save_dir, exist_ok=True)
        save_path = os.path.join(save_dir, filename)
        with open(save_path, 'wb') as f:
            for chunk in response.iter_content(chunk_size=8192):
                f.write(chunk)

        print(f"   ✅ Downloaded: {filename}")
        return save_path

    except requests.RequestException as e:
        print(f"   ✗ Failed to download {url}: {e}")
        return None


def title_from_filename(pdf_path: str) -> str:
    stem = os.path.splitext(os.path.basename(pdf_path))[0]
    return stem.replace("_", " ").replace("-", " ").strip().title()


async def ingest_file(pdf_path: str, extractor: PdfTextExtractor, admin: CurriculumAdmin) -> Optional[str]:
    """OCR one PDF and add it as a curriculum item. Returns the new item id."""
    filename = os.path.basename(pdf_path)
    print(f"\n📖 Processing: {filename}")

    with open(pdf_path, "rb") as f:
        pdf_bytes = f.read()

    def on_progress(page_num: int, total_pages: int):
        print(f"   Extracting text: page {page_num} of {total_pages}...")

    try:
        text = await extractor.extract(pdf_bytes, filename, on_progress=on_progress)
    except (TutorError, ValueError) as e:
        print(f"   ✗ Extraction failed for {filename}: {e}")
        return None

    try:
        item = await admin.save_item(
            title_from_filename(pdf_path),
            text,
            content_type="pdf",
            pdf_file_name=filename,
        )
    except ValueError as e:
        print(f"   ✗ Could not tag {filename}: {e}")
        return None

    print(f"   ✅ Added {item.id}: topics={item.topics}, grades={item.grades}, {len(text)} characters")
    return item.id


async def run(pdf_dir: str, curriculum_path: str, urls: List[str]):
    print("=" * 70)
    print("🚀 Curriculum PDF Ingestion Pipeline")
    print("   (Incremental Processing Mode)")
    print("=" * 70)

    if not os.getenv("OPENAI_API_KEY"):
        print("\n⚠️  OPENAI_API_KEY not found! Set it in your .env file and try again.")
        return

    os.makedirs(pdf_dir, exist_ok=True)
    for url in urls:
        download_pdf_from_url(url, pdf_dir)

    processed_files = load_processed_files()
    print(f"\n📋 Processed files log: {len(processed_files)} files tracked")

    all_pdf_files = sorted(glob.glob(os.path.join(pdf_dir, "*.pdf")))
    if not all_pdf_files:
        print(f"\n⚠️  No PDF files found in {pdf_dir}")
        print("   Add curriculum PDFs to this directory or pass --url")
        return

    print(f"\n📚 Found {len(all_pdf_files)} PDF files total")
    new_pdf_files = get_new_files(all_pdf_files, processed_files)
    if not new_pdf_files:
        print("\n✅ All files are up to date! No new files to process.")
        print(f"   To reprocess all files, delete {PROCESSED_FILES_LOG}")
        return

    admin = CurriculumAdmin(JsonCurriculumStore(curriculum_path), create_gateway("openai"))
    await admin.load()
    extractor = PdfTextExtractor()

    added = 0
    for pdf_path in new_pdf_files:
        item_id = await ingest_file(pdf_path, extractor, admin)
        if item_id is None:
            continue
        added += 1
        processed_files[os.path.basename(pdf_path)] = {
            'hash': get_file_hash(pdf_path),
            'processed_at': datetime.now().isoformat(),
            'item_id': item_id,
        }

    if added:
        await admin.persist()
        save_processed_files(processed_files)

    stats = admin.stats()
    print("\n" + "=" * 70)
    print("✅ INGESTION COMPLETE!")
    print("=" * 70)
    print("📊 Summary:")
    print(f"   • New files processed: {added}/{len(new_pdf_files)}")
    print(f"   • Active curriculum items: {stats['active']}")
    print(f"   • Topics covered: {stats['topics']}")
    print(f"   • Curriculum file: {curriculum_path}")
    print("=" * 70)


def main():
    parser = argparse.ArgumentParser(description="OCR curriculum PDFs into curriculum.json")
    parser.add_argument("--pdf-dir", default=PDF_DIR, help="Directory containing PDFs")
    parser.add_argument("--curriculum", default=CURRICULUM_PATH, help="curriculum.json to update")
    parser.add_argument("--url", action="append", default=[], help="PDF URL to download first (repeatable)")
    args = parser.parse_args()

    asyncio.run(run(args.pdf_dir, args.curriculum, args.url))


if __name__ == "__main__":
    main()
