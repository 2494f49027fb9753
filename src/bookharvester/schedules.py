"""
Temporal Schedules that start harvest runs.

Two schedules exist: the daily harvest of every pending book and the weekly
warnings report. Both skip a run while the previous one is still going, so
one worker never harvests the same queue twice at once.

Usage:
    bookharvester-schedules install
    bookharvester-schedules status
    bookharvester-schedules pause --note "backend migration"
    bookharvester-schedules resume --only harvest-all-daily
    bookharvester-schedules remove
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from temporalio.client import (
    Client,
    Schedule,
    ScheduleActionStartWorkflow,
    ScheduleAlreadyRunningError,
    ScheduleOverlapPolicy,
    SchedulePolicy,
    ScheduleSpec,
    ScheduleState,
)

from .worker import TASK_QUEUE, get_temporal_client
from .workflows import HarvestAllWorkflow, HarvestWarningsWorkflow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HarvestSchedule:
    """When and how a harvest workflow is started."""

    schedule_id: str
    workflow: type
    cron: str
    args: tuple = ()
    note: str = ""


HARVEST_SCHEDULES: Dict[str, HarvestSchedule] = {
    s.schedule_id: s
    for s in (
        HarvestSchedule(
            "harvest-all-daily",
            HarvestAllWorkflow,
            cron="0 6 * * *",
            # no limit, every book the default query selects
            args=(-1, ""),
            note="Daily harvest of all pending books",
        ),
        HarvestSchedule(
            "harvest-warnings-weekly",
            HarvestWarningsWorkflow,
            cron="0 7 * * 1",
            note="Weekly report of books with warnings",
        ),
    )
}


@dataclass
class ScheduleStatus:
    schedule_id: str
    installed: bool
    paused: bool = False
    note: str = ""
    next_run: Optional[datetime] = None


def build_schedule(entry: HarvestSchedule, task_queue: str = TASK_QUEUE) -> Schedule:
    """Turn a HarvestSchedule into the Temporal Schedule definition."""
    return Schedule(
        action=ScheduleActionStartWorkflow(
            entry.workflow.run,
            args=list(entry.args),
            id=f"{entry.schedule_id}-run",
            task_queue=task_queue,
        ),
        spec=ScheduleSpec(cron_expressions=[entry.cron]),
        policy=SchedulePolicy(overlap=ScheduleOverlapPolicy.SKIP),
        state=ScheduleState(note=entry.note),
    )


def _select(only: Optional[Iterable[str]]) -> List[HarvestSchedule]:
    if not only:
        return list(HARVEST_SCHEDULES.values())
    unknown = [schedule_id for schedule_id in only if schedule_id not in HARVEST_SCHEDULES]
    if unknown:
        raise ValueError(f"Unknown harvest schedule(s): {', '.join(unknown)}")
    return [HARVEST_SCHEDULES[schedule_id] for schedule_id in only]


async def ensure_schedules(
    client: Client, only: Optional[Iterable[str]] = None, task_queue: str = TASK_QUEUE
) -> List[str]:
    """Install the harvest schedules that are not installed yet.

    Returns the IDs that were newly created. Existing schedules are left
    exactly as they are, paused or not.
    """
    created = []
    for entry in _select(only):
        try:
            await client.create_schedule(entry.schedule_id, build_schedule(entry, task_queue))
        except ScheduleAlreadyRunningError:
            logger.info("Schedule %s already installed", entry.schedule_id)
            continue
        logger.info("Installed schedule %s (%s)", entry.schedule_id, entry.cron)
        created.append(entry.schedule_id)
    return created


async def set_paused(
    client: Client, paused: bool, note: str = "", only: Optional[Iterable[str]] = None
) -> List[str]:
    """Pause or resume harvest schedules. Returns the IDs that changed."""
    changed = []
    for entry in _select(only):
        handle = client.get_schedule_handle(entry.schedule_id)
        try:
            if paused:
                await handle.pause(note=note or "Paused by operator")
            else:
                await handle.unpause(note=note or "Resumed by operator")
        except Exception as e:
            logger.error("Could not %s %s: %s", "pause" if paused else "resume", entry.schedule_id, e)
            continue
        changed.append(entry.schedule_id)
    return changed


async def remove_schedules(client: Client, only: Optional[Iterable[str]] = None) -> List[str]:
    """Delete harvest schedules. Returns the IDs that were deleted."""
    removed = []
    for entry in _select(only):
        try:
            await client.get_schedule_handle(entry.schedule_id).delete()
        except Exception as e:
            logger.error("Could not remove %s: %s", entry.schedule_id, e)
            continue
        logger.info("Removed schedule %s", entry.schedule_id)
        removed.append(entry.schedule_id)
    return removed


async def describe_schedules(
    client: Client, only: Optional[Iterable[str]] = None
) -> List[ScheduleStatus]:
    """Report whether each harvest schedule is installed, paused, and due."""
    statuses = []
    for entry in _select(only):
        try:
            description = await client.get_schedule_handle(entry.schedule_id).describe()
        except Exception as e:
            logger.debug("Schedule %s not found: %s", entry.schedule_id, e)
            statuses.append(ScheduleStatus(entry.schedule_id, installed=False))
            continue
        state = description.schedule.state
        upcoming = description.info.next_action_times
        statuses.append(
            ScheduleStatus(
                entry.schedule_id,
                installed=True,
                paused=state.paused,
                note=state.note or "",
                next_run=upcoming[0] if upcoming else None,
            )
        )
    return statuses


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage the harvest Temporal schedules")
    parser.add_argument("--temporal-host", default=None)
    commands = parser.add_subparsers(dest="command", required=True)
    for name, help_text in (
        ("install", "Install missing harvest schedules"),
        ("status", "Show harvest schedule state"),
        ("pause", "Pause harvest schedules"),
        ("resume", "Resume paused harvest schedules"),
        ("remove", "Delete harvest schedules"),
    ):
        command = commands.add_parser(name, help=help_text)
        command.add_argument(
            "--only",
            action="append",
            choices=sorted(HARVEST_SCHEDULES),
            help="Limit to one schedule (repeatable)",
        )
        if name in ("pause", "resume"):
            command.add_argument("--note", default="")
    return parser


async def run_command(args: argparse.Namespace, client: Client) -> List[str]:
    """Run one parsed CLI command and return the lines to print."""
    if args.command == "install":
        created = await ensure_schedules(client, args.only)
        return [f"installed {schedule_id}" for schedule_id in created] or ["nothing to install"]
    if args.command == "status":
        lines = []
        for status in await describe_schedules(client, args.only):
            if not status.installed:
                lines.append(f"{status.schedule_id}: not installed")
                continue
            state = "paused" if status.paused else "active"
            next_run = status.next_run.isoformat() if status.next_run else "-"
            lines.append(f"{status.schedule_id}: {state}, next run {next_run}")
        return lines
    if args.command in ("pause", "resume"):
        changed = await set_paused(client, args.command == "pause", args.note, args.only)
        return [f"{args.command}d {schedule_id}" for schedule_id in changed]
    removed = await remove_schedules(client, args.only)
    return [f"removed {schedule_id}" for schedule_id in removed]


async def _cli_main(argv: Optional[List[str]] = None) -> None:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO)
    client = await get_temporal_client(args.temporal_host)
    for line in await run_command(args, client):
        print(line)


def main():
    asyncio.run(_cli_main())


if __name__ == "__main__":
    main()
