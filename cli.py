import argparse
import json
import logging
import sys

from config import YamlConfig
from rest_api import PlanAPI
from plan_parser import parse
from seed_sample_data import seed
from workout_generation_service import GenerationError


def parse_file(path: str) -> list:
    with open(path, "r", encoding="utf-8") as f:
        text = f.read()
    return [day.as_dict() for day in parse(text)]


def generate_plan(db_path: str, yaml_path: str, plan_id: int) -> dict:
    """Rebuild the workouts of a stored plan and remove days it no longer has."""
    api = PlanAPI(db_path=db_path, yaml_path=yaml_path)
    plan = api.plans.fetch_detail(plan_id)
    print(f"Plan: {plan['name']} ({len(plan['plan_details'])} characters)")
    result = api.plan_service.regenerate(plan_id)
    print(f"Created {result['created_count']} workouts")
    print(f"Updated {result['updated_count']} workouts")
    print(f"Removed {result['removed_count']} workouts")
    for wid, _pid, day, muscle_group, _created in api.workouts.fetch_for_plan(plan_id):
        count = len(api.exercises.fetch_for_workout(wid))
        print(f"  Day {day}: {muscle_group} ({count} exercises)")
    return result


def cleanup_plan(db_path: str, yaml_path: str, plan_id: int) -> int:
    api = PlanAPI(db_path=db_path, yaml_path=yaml_path)
    plan = api.plans.fetch_detail(plan_id)
    removed = api.generator.cleanup(plan_id, plan["plan_details"])
    print(f"Removed {removed} workouts")
    return removed


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Utility commands")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
    )
    sub = parser.add_subparsers(dest="cmd", required=True)

    prs = sub.add_parser("parse")
    prs.add_argument("--file", required=True)

    gen = sub.add_parser("generate")
    gen.add_argument("--plan-id", type=int, required=True)
    gen.add_argument("--db", default="workout.db")
    gen.add_argument("--yaml", default="settings.yaml")

    cln = sub.add_parser("cleanup")
    cln.add_argument("--plan-id", type=int, required=True)
    cln.add_argument("--db", default="workout.db")
    cln.add_argument("--yaml", default="settings.yaml")

    demo = sub.add_parser("demo")
    demo.add_argument("--db", default="workout.db")
    demo.add_argument("--yaml", default="settings.yaml")

    srv = sub.add_parser("serve")
    srv.add_argument("--db", default="workout.db")
    srv.add_argument("--yaml", default="settings.yaml")
    srv.add_argument("--host", default="127.0.0.1")
    srv.add_argument("--port", type=int, default=8000)

    args = parser.parse_args(argv)
    yaml_path = getattr(args, "yaml", "settings.yaml")
    try:
        level = args.log_level or YamlConfig(yaml_path).load_with_defaults()["log_level"]
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.cmd == "parse":
            print(json.dumps(parse_file(args.file), indent=2))
        elif args.cmd == "generate":
            generate_plan(args.db, args.yaml, args.plan_id)
        elif args.cmd == "cleanup":
            cleanup_plan(args.db, args.yaml, args.plan_id)
        elif args.cmd == "demo":
            seed(PlanAPI(db_path=args.db, yaml_path=args.yaml))
        elif args.cmd == "serve":
            import uvicorn

            api = PlanAPI(db_path=args.db, yaml_path=args.yaml)
            uvicorn.run(api.app, host=args.host, port=args.port)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except GenerationError as e:
        print(f"Error generating workouts: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
