"""
CLI to manage the identity database.

    python -m scripts.cli list
    python -m scripts.cli register --name Alice a.jpg b.jpg
    python -m scripts.cli export --out output/facelab_db.json
    python -m scripts.cli import output/facelab_db.json
    python -m scripts.cli clear --yes
"""
from __future__ import annotations
import argparse, json, logging, os, sys

import cv2

from facelab.app import FaceLab
from facelab.config import Settings
from facelab.errors import FaceLabError


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="facelab")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="Show registered names and descriptor counts")

    reg = sub.add_parser("register", help="Register face images under a name")
    reg.add_argument("--name", required=True, help="Person name")
    reg.add_argument("images", nargs="+", help="Image files")

    exp = sub.add_parser("export", help="Write the database to a JSON file")
    exp.add_argument("--out", default=os.path.join("output", "facelab_db.json"), help="Output JSON path")

    imp = sub.add_parser("import", help="Replace the database with a JSON file")
    imp.add_argument("file", help="JSON document to import")

    clr = sub.add_parser("clear", help="Remove all registered faces")
    clr.add_argument("--yes", action="store_true", help="Confirm clearing the database")
    return p


def run(args: argparse.Namespace, facelab: FaceLab) -> int:
    if args.command == "list":
        print(json.dumps(facelab.summary().model_dump(), indent=2, ensure_ascii=False))
    elif args.command == "register":
        facelab.load_models()
        images = [(path, cv2.imread(path)) for path in args.images]
        result = facelab.register(args.name, images)
        print(f"✅ Registered {result.registered} face(s) for {result.name}")
        for skipped in result.skipped:
            print(f"⚠️  No face found in {skipped}")
    elif args.command == "export":
        os.makedirs(os.path.dirname(args.out) or ".", exist_ok=True)
        with open(args.out, "w", encoding="utf-8") as f:
            f.write(facelab.export_db())
        print(f"✅ Database written to {args.out}")
    elif args.command == "import":
        with open(args.file, "r", encoding="utf-8") as f:
            facelab.import_db(f.read())
        print(f"✅ Imported {facelab.state.db_count} identities")
    elif args.command == "clear":
        if not args.yes:
            print("Refusing to clear without --yes", file=sys.stderr)
            return 2
        facelab.clear_db()
        print("✅ Cleared all registered faces")
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings()
    logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL))
    try:
        return run(args, FaceLab(settings))
    except FaceLabError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

if __name__ == "__main__":
    sys.exit(main())
