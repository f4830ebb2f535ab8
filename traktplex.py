#!/usr/bin/env python3
# TraktPlex console client
# Reconciles Plex watched/collection state with Trakt.
from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from typing import Any, Dict, Optional, TextIO

from tp_platform._logging import log
from tp_platform.config_base import load_config
from tp_platform.agent import CatalogFetchError, ProgressEvent, SyncAgent
from tp_platform.agent._progress import EpisodePayload, MessagePayload, MoviePayload

__VERSION__ = "1.0.0"

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CANCELLED = 130


# --------------------------------------------------------------------------------------
# Rendering
# --------------------------------------------------------------------------------------
def render_event(ev: ProgressEvent) -> str:
    h = ev.header
    head = f"[{h.process_name}] {h.current}/{h.total} {h.status.value:<16}"
    p = ev.payload
    if isinstance(p, MessagePayload):
        name = f"{h.item_name}: " if h.item_name else ""
        return f"{head} {name}{p.message}".rstrip()
    if isinstance(p, MoviePayload):
        year = f" ({p.year})" if p.year else ""
        msg = f" - {p.message}" if p.message else ""
        return f"{head} {h.item_name}{year}{msg}"
    if isinstance(p, EpisodePayload):
        where = ""
        if p.season is not None and p.episode is not None:
            where = f" S{p.season:02d}E{p.episode:02d}"
        elif p.season is not None:
            where = f" S{p.season:02d}"
        ext = f" [{p.external_provider_id}]" if p.external_provider_id else ""
        msg = f" - {p.message}" if p.message else ""
        return f"{head} {h.item_name}{where}{ext}{msg}"
    return f"{head} {h.item_name}"


def render_summary(results: Dict[str, Any]) -> list[str]:
    lines: list[str] = []
    for key, res in results.items():
        statuses = dict((res.stats or {}).get("statuses") or {})
        counts = ", ".join(f"{k}={v}" for k, v in sorted(statuses.items())) or "no events"
        lines.append(
            f"{key}: local={res.local_count} collected={res.collected_count} watched={res.watched_count} "
            f"candidates={len(res.candidates)} removed={len(res.removed)}"
            f"{' (cancelled)' if res.cancelled else ''}"
        )
        lines.append(f"  {counts}")
    return lines


# --------------------------------------------------------------------------------------
# CLI
# --------------------------------------------------------------------------------------
def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="traktplex",
        description="Sync Plex watched state and collection with Trakt.",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    ap.add_argument("config", nargs="?", help="Path to config.json (default: $CONFIG_BASE/config.json)")
    only = ap.add_mutually_exclusive_group()
    only.add_argument("--movies", action="store_true", help="Only sync movies")
    only.add_argument("--shows", action="store_true", help="Only sync TV shows")
    ap.add_argument("--remove", action="store_true", help="Remove remote-only items from the Trakt collection")
    ap.add_argument("--batch-limit", type=int, metavar="N", help="Items reconciled concurrently per batch")
    ap.add_argument("--debug", action="store_true", help="Enable verbose logging")
    ap.add_argument("--version", action="version", version=f"TraktPlex {__VERSION__}")
    return ap


def apply_overrides(cfg: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    sync = dict(cfg.get("sync") or {})
    if args.movies:
        sync["movies"], sync["shows"] = True, False
    elif args.shows:
        sync["movies"], sync["shows"] = False, True
    if args.remove:
        sync["remove_from_collection"] = True
    if args.batch_limit is not None and args.batch_limit > 0:
        sync["batch_limit"] = int(args.batch_limit)
    cfg["sync"] = sync
    if args.debug:
        rt = dict(cfg.get("runtime") or {})
        rt["debug"] = True
        cfg["runtime"] = rt
    return cfg


async def run_agent(agent: SyncAgent, out: TextIO = sys.stdout) -> Dict[str, Any]:
    """Run the agent while printing every progress event as it arrives."""
    channel = agent.progress
    assert channel is not None

    async def _consume() -> None:
        async for ev in channel:
            out.write(render_event(ev) + "\n")
            out.flush()

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, agent.cancel)
    except (NotImplementedError, RuntimeError):
        # no loop signal handlers on this platform; KeyboardInterrupt still applies
        pass

    consumer = asyncio.create_task(_consume())
    try:
        results = await agent.run(close=True)
    finally:
        if not channel.closed:
            channel.close()
        await consumer
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass
    return results


def _build_clients(cfg: Dict[str, Any]):
    from providers.sync._mod_PLEX import PLEXModule
    from providers.sync._mod_TRAKT import TRAKTModule

    local = PLEXModule(cfg).connect()
    remote = TRAKTModule(cfg)
    return local, remote


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        cfg = apply_overrides(load_config(args.config), args)
    except (OSError, ValueError) as e:
        log.error(f"config: {e}")
        return EXIT_ERROR
    log.configure(cfg.get("runtime"))

    try:
        local, remote = _build_clients(cfg)
    except RuntimeError as e:
        log.error(str(e))
        return EXIT_ERROR

    agent = SyncAgent(local, remote, cfg)
    try:
        results = asyncio.run(run_agent(agent))
    except CatalogFetchError as e:
        log.error(str(e))
        return EXIT_ERROR
    except KeyboardInterrupt:
        log.warn("interrupted")
        return EXIT_CANCELLED

    for line in render_summary(results):
        print(line)
    if agent.cancelled:
        log.warn("run cancelled; remaining items were not processed")
        return EXIT_CANCELLED
    log.success("done")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
