from __future__ import annotations

import argparse
import json
from dataclasses import asdict

from palletpro.config import settings
from palletpro.services.insights_service import generate_insights, get_empty_state_content, get_user_stage
from palletpro.services.provider_factory import build_snapshot_provider


def build_report(*, user_id: str, provider_name: str, stale_days: int | None = None) -> dict:
    snapshot = build_snapshot_provider(provider_name).load_snapshot(user_id=user_id)
    insights = generate_insights(pallets=snapshot.pallets, items=snapshot.items, stale_threshold_days=stale_days)
    stage = get_user_stage(pallets=snapshot.pallets, items=snapshot.items)
    return {
        'user_id': user_id,
        'stage': stage.value,
        'insights': [asdict(insight) for insight in insights],
        'empty_state': None if insights else asdict(get_empty_state_content(stage)),
    }


def main() -> None:
    parser = argparse.ArgumentParser(description='Print dashboard insights for one user.')
    parser.add_argument('--user-id', required=True, help='Owner of the pallets and items to analyse.')
    parser.add_argument(
        '--provider',
        choices=['mock', 'database'],
        default=settings.snapshot_provider,
        help='Where to load the inventory snapshot from.',
    )
    parser.add_argument('--stale-days', type=int, default=None, help='Days listed before an item counts as stale.')
    parser.add_argument('--json', action='store_true', help='Print the report as JSON.')
    args = parser.parse_args()

    report = build_report(user_id=args.user_id, provider_name=args.provider, stale_days=args.stale_days)
    if args.json:
        print(json.dumps(report, indent=2, default=str))
        return

    print(f"User {report['user_id']} ({report['stage']})")
    if report['empty_state'] is not None:
        empty = report['empty_state']
        print(f"{empty['title']} {empty['message']}")
        return
    for insight in report['insights']:
        print(f"[{insight['priority']}] {insight['title']}: {insight['message']}")


if __name__ == '__main__':
    main()
