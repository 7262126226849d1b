#!/usr/bin/env python3
"""
Trellis - Roadmap Hierarchy Composition Engine

Command-line entry point. Operates on the DuckDB database named in
config.yaml: seed items, attach/detach/move them, and inspect or audit the
resulting trees.
"""

import logging
import sys
import argparse
from pathlib import Path
from typing import Any, Dict, List

import yaml

from trellis.config import config
from trellis.database import DatabaseManager
from trellis.hierarchy import HierarchyMutator, TreeQueryService, HierarchyAuditor
from trellis.models import Item, TreeNode, TreeFilter, MutationResult


def setup_logging():
    """Configure logging for the application."""
    level = getattr(logging, config.get("logging.level", "INFO").upper())
    format_str = config.get("logging.format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    log_file = config.log_filename

    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[
            logging.StreamHandler(sys.stderr),
            logging.FileHandler(log_file)
        ]
    )


def load_seed_file(seed_path: str) -> List[Dict[str, Any]]:
    """
    Read item definitions from a YAML seed file.

    Args:
        seed_path: Path to a file with a top-level `items` list

    Returns:
        The raw item entries
    """
    path = Path(seed_path)
    if not path.exists():
        raise FileNotFoundError(f"Seed file not found: {path}")

    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}

    entries = data.get("items", [])
    if not isinstance(entries, list):
        raise ValueError(f"'items' in {path} must be a list")
    return entries


def seed_items(db: DatabaseManager, entries: List[Dict[str, Any]]) -> Dict[str, int]:
    """
    Insert seed items as roots, then attach the ones naming a `parent`.

    Attachments go through the mutator in file order, so a seed file cannot
    produce a tree the engine would reject.

    Returns:
        Counts of added, skipped, attached and rejected items
    """
    stats = {"added": 0, "skipped": 0, "attached": 0, "rejected": 0}
    attachments = []

    for entry in entries:
        entry = dict(entry)
        parent_id = entry.pop("parent", None)
        stored_parent = entry.pop("parent_item_id", None)
        parent_id = parent_id or stored_parent
        entry.pop("item_depth", None)
        item = Item(**entry, parent_item_id=None, item_depth=0)
        if db.add_item(item):
            stats["added"] += 1
        else:
            logging.info(f"Item {item.id} already exists, skipping")
            stats["skipped"] += 1
        if parent_id:
            attachments.append((item.id, parent_id))

    mutator = HierarchyMutator(db)
    for child_id, parent_id in attachments:
        current = db.get_item(child_id)
        if current and current.parent_item_id == parent_id:
            continue
        result = mutator.attach(child_id, parent_id)
        if result.success:
            stats["attached"] += 1
        else:
            stats["rejected"] += 1
            print(f"  ✗ {child_id} -> {parent_id}: {result.error.message}")

    return stats


def format_item(item: Item) -> str:
    """One-line summary of an item."""
    window = ""
    if item.start_date or item.end_date:
        start = item.start_date.isoformat() if item.start_date else "…"
        end = item.end_date.isoformat() if item.end_date else "…"
        window = f" [{start} → {end}]"
    return f"{item.title} ({item.type.value}, {item.status.value}, depth {item.item_depth}){window} <{item.id}>"


def render_tree(nodes: List[TreeNode]) -> List[str]:
    """Render tree nodes as indented lines."""
    lines = []
    stack = [(node, 0) for node in reversed(nodes)]
    while stack:
        node, indent = stack.pop()
        suffix = f" +{node.descendant_count}" if node.descendant_count else ""
        lines.append(f"{'  ' * indent}- {format_item(node.item)}{suffix}")
        stack.extend((child, indent + 1) for child in reversed(node.children))
    return lines


def report_result(action: str, result: MutationResult) -> int:
    """Print a mutation outcome and return the process exit code."""
    if result.success:
        print(f"✅ {action} succeeded: {format_item(result.item)}")
        if result.updated_descendants:
            print(f"   {result.updated_descendants} descendant depths updated")
        return 0

    print(f"❌ {action} rejected [{result.error.code.value}]: {result.error.message}")
    return 1


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Trellis - Roadmap Hierarchy Composition Engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py init                             # Create the roadmap_items table
  python main.py seed samples/roadmap.yaml        # Load items and attach their parents
  python main.py attach task-1 milestone-1        # Put task-1 under milestone-1
  python main.py move task-1 --root               # Make task-1 a root again
  python main.py tree --section launch            # Print the section's forest
  python main.py audit launch --fix-depths        # Check invariants, repair cached depths
        """
    )

    parser.add_argument(
        "--database",
        type=str,
        default=None,
        help=f"DuckDB database file (default: {config.database_filename})"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="Trellis 0.1.0"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init", help="Create database tables")

    seed = subparsers.add_parser("seed", help="Load items from a YAML file")
    seed.add_argument("seed_file", help="YAML file with a top-level 'items' list")

    attach = subparsers.add_parser("attach", help="Attach an item under a parent")
    attach.add_argument("child_id")
    attach.add_argument("parent_id")

    detach = subparsers.add_parser("detach", help="Detach an item from its parent")
    detach.add_argument("child_id")

    move = subparsers.add_parser("move", help="Move an item under a new parent")
    move.add_argument("item_id")
    target = move.add_mutually_exclusive_group(required=True)
    target.add_argument("parent_id", nargs="?", default=None)
    target.add_argument("--root", action="store_true", help="Make the item a root")

    tree = subparsers.add_parser("tree", help="Print roadmap trees")
    tree.add_argument("--project", dest="project_id")
    tree.add_argument("--section", dest="section_id")
    tree.add_argument("--item", dest="item_id")
    tree.add_argument("--include-archived", action="store_true")
    tree.add_argument("--roots-only", action="store_true", help="Do not expand children")

    path = subparsers.add_parser("path", help="Print the ancestor path of an item")
    path.add_argument("item_id")

    descendants = subparsers.add_parser("descendants", help="List every item below an item")
    descendants.add_argument("item_id")

    audit = subparsers.add_parser("audit", help="Check a section's hierarchy invariants")
    audit.add_argument("section_id")
    audit.add_argument("--fix-depths", action="store_true", help="Rewrite wrong cached depths")

    return parser.parse_args(argv)


def run_command(args, db: DatabaseManager) -> int:
    """Dispatch a parsed command against an open database."""
    if args.command == "init":
        print(f"✅ Database ready: {db.db_path}")
        return 0

    if args.command == "seed":
        stats = seed_items(db, load_seed_file(args.seed_file))
        print(f"✅ Seeded: {stats['added']} added, {stats['skipped']} skipped, "
              f"{stats['attached']} attached, {stats['rejected']} rejected")
        return 0 if stats["rejected"] == 0 else 1

    if args.command == "attach":
        return report_result("Attach", HierarchyMutator(db).attach(args.child_id, args.parent_id))

    if args.command == "detach":
        return report_result("Detach", HierarchyMutator(db).detach(args.child_id))

    if args.command == "move":
        new_parent = None if args.root else args.parent_id
        return report_result("Move", HierarchyMutator(db).move(args.item_id, new_parent))

    queries = TreeQueryService(db)

    if args.command == "tree":
        nodes = queries.get_roadmap_item_tree(TreeFilter(
            project_id=args.project_id,
            section_id=args.section_id,
            item_id=args.item_id,
            include_archived=args.include_archived,
            include_children=not args.roots_only
        ))
        if not nodes:
            print("No items found.")
        for line in render_tree(nodes):
            print(line)
        return 0

    if args.command == "path":
        entries = queries.get_item_path(args.item_id)
        if not entries:
            print(f"Item not found: {args.item_id}")
            return 1
        print(" / ".join(f"{entry.title} ({entry.type.value})" for entry in entries))
        return 0

    if args.command == "descendants":
        items = queries.get_all_descendants(args.item_id)
        for item in sorted(items, key=lambda i: (i.item_depth, i.order_index, i.id)):
            print(f"- {format_item(item)}")
        print(f"{len(items)} descendants")
        return 0

    if args.command == "audit":
        auditor = HierarchyAuditor(db)
        if args.fix_depths:
            fixed = auditor.recompute_depths(args.section_id)
            print(f"🔧 Rewrote {fixed} cached depths")
        report = auditor.audit_section(args.section_id)
        for issue in report.issues:
            print(f"  [{issue.code}] {issue.item_id}: {issue.message}")
        if report.ok:
            print(f"✅ Section {args.section_id}: {report.items_checked} items, no issues")
            return 0
        print(f"❌ Section {args.section_id}: {len(report.issues)} issues in {report.items_checked} items")
        return 1

    raise ValueError(f"Unknown command: {args.command}")


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_arguments(argv)
    setup_logging()

    db_path = args.database or config.database_filename
    logging.info(f"Trellis - using database {db_path}")

    try:
        with DatabaseManager(db_path) as db:
            db.initialize_database()
            return run_command(args, db)

    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        print("\nInterrupted.")
        return 130

    except Exception as e:
        logging.error(f"Command '{args.command}' failed: {e}")
        print(f"\nCommand failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
