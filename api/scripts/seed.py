import argparse
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from hatemates.config import DEMO_AUTO_ACCEPT_MAX_GROUP_ID
from hatemates.database import SessionLocal
from hatemates.services.seeding import CITIES, seed_demo_data


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed demo Hatemates users")
    parser.add_argument("--n-users", type=int, default=20)
    parser.add_argument("--city", type=str, default="Irvine", choices=sorted(CITIES))
    parser.add_argument("--reset", action="store_true")
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--max-group-id", type=int, default=DEMO_AUTO_ACCEPT_MAX_GROUP_ID)
    args = parser.parse_args()

    with SessionLocal() as db:
        summary = seed_demo_data(
            db=db,
            n_users=args.n_users,
            seed=args.seed,
            city=args.city,
            reset=args.reset,
            max_group_id=args.max_group_id,
        )

    print("Seed completed")
    for k, v in summary.items():
        print(f"- {k}: {v}")


if __name__ == "__main__":
    main()
