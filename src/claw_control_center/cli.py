from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Optional

from rich.console import Console
from rich.table import Table

from .config import get_log_level, load_center_config
from .errors import ClawError
from .logging_utils import configure_logging, pretty
from .server import create_app
from .service import ControlCenter
from .tasks.model import LANE_VALUES, PRIORITY_VALUES


def _resolve_project_dir(project_dir: Optional[str]) -> Path:
    return Path(project_dir).expanduser().resolve() if project_dir else Path.cwd().resolve()


def _ctx(args: argparse.Namespace) -> ControlCenter:
    return ControlCenter(_resolve_project_dir(args.project_dir))


def _emit(payload: Any) -> int:
    sys.stdout.write(json.dumps(payload, indent=2) + '\n')
    return 0


def _split(values: Optional[list[str]]) -> list[str]:
    out: list[str] = []
    for value in values or []:
        out.extend(part.strip() for part in value.split(',') if part.strip())
    return out


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------

def _task_create(args: argparse.Namespace) -> int:
    center = _ctx(args)
    created = center.create_and_assign(
        args.title,
        description=args.description or '',
        lane=args.lane,
        priority=args.priority,
        owner=args.owner,
        depends_on=_split(args.depends_on),
        tags=_split(args.tag),
        acceptance_criteria=list(args.criteria or []),
        estimated_hours=args.estimate,
        created_by=args.created_by,
    )
    return _emit({
        'task': created.task.to_dict(),
        'assignment': created.assignment.to_dict() if created.assignment else None,
    })


def _task_list(args: argparse.Namespace) -> int:
    center = _ctx(args)
    tasks = center.list_tasks(lane=args.lane, owner=args.owner, priority=args.priority, search=args.search)
    if args.json:
        return _emit({'tasks': [t.to_dict() for t in tasks], 'total': len(tasks)})
    table = Table(title=f"Tasks ({len(tasks)})", show_header=True)
    for column in ('ID', 'Lane', 'Pri', 'Owner', 'Deps', 'Title'):
        table.add_column(column)
    for t in tasks:
        table.add_row(t.id, t.lane.value, t.priority.value, t.owner or '-', str(len(t.depends_on)), pretty(t.title, 60))
    Console().print(table)
    return 0


def _task_show(args: argparse.Namespace) -> int:
    center = _ctx(args)
    if args.context:
        return _emit(center.tasks.get_context(args.task_id))
    return _emit({'task': center.require_task(args.task_id).to_dict()})


def _task_update(args: argparse.Namespace) -> int:
    center = _ctx(args)
    patch: dict[str, Any] = {}
    for key in ('title', 'description', 'lane', 'priority', 'note'):
        value = getattr(args, key)
        if value is not None:
            patch[key] = value
    if args.owner is not None:
        patch['owner'] = args.owner or None
    if args.depends_on is not None:
        patch['depends_on'] = _split(args.depends_on)
    update = center.apply_update(args.task_id, patch)
    return _emit({'task': update.task.to_dict(), 'unblocked': [t.id for t in update.unblocked]})


def _task_assign(args: argparse.Namespace) -> int:
    return _emit(_ctx(args).assign_task(args.task_id, args.agent_id).to_dict())


def _task_auto_assign(args: argparse.Namespace) -> int:
    center = _ctx(args)
    if args.task_ids:
        results = center.auto_assign_tasks(args.task_ids)
    else:
        results = center.auto_assign_tasks()
    return _emit({'results': [r.to_dict() for r in results]})


def _task_start(args: argparse.Namespace) -> int:
    return _emit({'task': _ctx(args).start_task(args.task_id, args.agent).to_dict()})


def _task_done(args: argparse.Namespace) -> int:
    update = _ctx(args).complete_task(args.task_id, args.note)
    return _emit({'task': update.task.to_dict(), 'unblocked': [t.id for t in update.unblocked]})


def _task_comment(args: argparse.Namespace) -> int:
    task = _ctx(args).tasks.add_comment(args.task_id, args.text, by=args.by)
    return _emit({'task': task.to_dict()})


def _task_time(args: argparse.Namespace) -> int:
    task = _ctx(args).tasks.log_time(args.task_id, args.hours, agent_id=args.agent, note=args.note)
    return _emit({'task': task.to_dict()})


def _task_board(args: argparse.Namespace) -> int:
    board = _ctx(args).tasks.get_board()
    if args.json:
        return _emit({'columns': board})
    table = Table(title="Board", show_header=True)
    for lane in LANE_VALUES:
        table.add_column(f"{lane} ({len(board[lane])})")
    depth = max((len(items) for items in board.values()), default=0)
    for row in range(depth):
        cells = []
        for lane in LANE_VALUES:
            items = board[lane]
            cells.append(f"[{items[row]['priority']}] {pretty(items[row]['title'], 28)}" if row < len(items) else '')
        table.add_row(*cells)
    Console().print(table)
    return 0


def _task_cycles(args: argparse.Namespace) -> int:
    return _emit({'cycles': _ctx(args).tasks.find_dependency_cycles()})


# ---------------------------------------------------------------------------
# Agents and notifications
# ---------------------------------------------------------------------------

def _agent_register(args: argparse.Namespace) -> int:
    agent = _ctx(args).register_agent({
        'id': args.agent_id,
        'name': args.name,
        'emoji': args.emoji,
        'roles': _split(args.role) or None,
        'model': args.model,
        'status': args.status,
    })
    return _emit({'agent': agent.to_dict()})


def _agent_list(args: argparse.Namespace) -> int:
    agents = _ctx(args).agents.list_agents(status=args.status, role=args.role)
    if args.json:
        return _emit({'agents': [a.to_dict() for a in agents], 'total': len(agents)})
    table = Table(title=f"Agents ({len(agents)})", show_header=True)
    for column in ('ID', 'Status', 'Roles', 'Load', 'Current task'):
        table.add_column(column)
    for a in agents:
        current = a.current_task or {}
        table.add_row(
            f"{a.emoji or ''} {a.id}".strip(),
            a.status.value,
            ', '.join(a.roles) or '-',
            str(a.workload),
            pretty(current.get('title') or current.get('id') or '-', 40),
        )
    Console().print(table)
    return 0


def _agent_heartbeat(args: argparse.Namespace) -> int:
    agent = _ctx(args).agents.heartbeat(args.agent_id, args.status, args.task)
    return _emit({'agent': agent.to_dict()})


def _agent_workload(args: argparse.Namespace) -> int:
    return _emit({'agents': _ctx(args).assignment.workload_report()})


def _agent_prune(args: argparse.Namespace) -> int:
    return _emit({'removed': _ctx(args).prune_stale_agents(args.max_age)})


def _notifications_list(args: argparse.Namespace) -> int:
    items = _ctx(args).notifications.list_for_agent(args.agent_id, unread=args.unread)
    return _emit({'notifications': [n.to_dict() for n in items], 'total': len(items)})


def _activity(args: argparse.Namespace) -> int:
    return _emit({'events': _ctx(args).activity.recent(args.limit)})


def _server(args: argparse.Namespace) -> int:
    try:
        import uvicorn
    except ImportError:
        sys.stderr.write("Install server extras: pip install 'claw-control-center[server]'\n")
        return 1

    app = create_app(project_dir=_resolve_project_dir(args.project_dir))
    uvicorn.run(app, host=args.host, port=args.port, reload=args.reload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Claw Control Center: task board and agent assignment')
    parser.add_argument('--project-dir', default=None, help='Target project directory (default: current working directory)')
    parser.add_argument('--log-level', default=None, help='Log level (default: config logging.level or INFO)')
    subparsers = parser.add_subparsers(dest='command', required=True)

    server = subparsers.add_parser('server', help='Start the bridge web server')
    server.add_argument('--host', default='127.0.0.1')
    server.add_argument('--port', default=8787, type=int)
    server.add_argument('--reload', action='store_true')
    server.set_defaults(func=_server)

    task = subparsers.add_parser('task', help='Manage tasks')
    task_sub = task.add_subparsers(dest='task_cmd', required=True)
    tcreate = task_sub.add_parser('create', help='Create a task (auto-assigned when no owner is given)')
    tcreate.add_argument('title')
    tcreate.add_argument('--description', default='')
    tcreate.add_argument('--lane', default='proposed', choices=LANE_VALUES)
    tcreate.add_argument('--priority', default='P2', choices=PRIORITY_VALUES)
    tcreate.add_argument('--owner', default=None)
    tcreate.add_argument('--depends-on', action='append', default=None, help='Task id(s), comma separated or repeated')
    tcreate.add_argument('--tag', action='append', default=None)
    tcreate.add_argument('--criteria', action='append', default=None, help='Acceptance criterion (repeatable)')
    tcreate.add_argument('--estimate', type=float, default=None, help='Estimated hours')
    tcreate.add_argument('--created-by', default=None)
    tcreate.set_defaults(func=_task_create)
    tlist = task_sub.add_parser('list', help='List tasks')
    tlist.add_argument('--lane', default=None, choices=LANE_VALUES)
    tlist.add_argument('--owner', default=None)
    tlist.add_argument('--priority', default=None, choices=PRIORITY_VALUES)
    tlist.add_argument('--search', default=None)
    tlist.add_argument('--json', action='store_true')
    tlist.set_defaults(func=_task_list)
    tshow = task_sub.add_parser('show', help='Show a task')
    tshow.add_argument('task_id')
    tshow.add_argument('--context', action='store_true', help='Include dependencies, dependents and subtasks')
    tshow.set_defaults(func=_task_show)
    tupdate = task_sub.add_parser('update', help='Update task fields or move it to another lane')
    tupdate.add_argument('task_id')
    tupdate.add_argument('--title', default=None)
    tupdate.add_argument('--description', default=None)
    tupdate.add_argument('--lane', default=None, choices=LANE_VALUES)
    tupdate.add_argument('--priority', default=None, choices=PRIORITY_VALUES)
    tupdate.add_argument('--owner', default=None, help="New owner ('' to unassign)")
    tupdate.add_argument('--depends-on', action='append', default=None)
    tupdate.add_argument('--note', default=None, help='Note recorded with a lane change')
    tupdate.set_defaults(func=_task_update)
    tassign = task_sub.add_parser('assign', help='Assign a task to an agent')
    tassign.add_argument('task_id')
    tassign.add_argument('agent_id')
    tassign.set_defaults(func=_task_assign)
    tauto = task_sub.add_parser('auto-assign', help='Auto-assign tasks (all open unowned tasks by default)')
    tauto.add_argument('task_ids', nargs='*')
    tauto.set_defaults(func=_task_auto_assign)
    tstart = task_sub.add_parser('start', help='Start work on a task (requires finished dependencies)')
    tstart.add_argument('task_id')
    tstart.add_argument('--agent', default=None)
    tstart.set_defaults(func=_task_start)
    tdone = task_sub.add_parser('done', help='Mark a task done')
    tdone.add_argument('task_id')
    tdone.add_argument('--note', default=None)
    tdone.set_defaults(func=_task_done)
    tcomment = task_sub.add_parser('comment', help='Comment on a task')
    tcomment.add_argument('task_id')
    tcomment.add_argument('text')
    tcomment.add_argument('--by', default=None)
    tcomment.set_defaults(func=_task_comment)
    ttime = task_sub.add_parser('time', help='Log hours against a task')
    ttime.add_argument('task_id')
    ttime.add_argument('hours', type=float)
    ttime.add_argument('--agent', default=None)
    ttime.add_argument('--note', default=None)
    ttime.set_defaults(func=_task_time)
    tboard = task_sub.add_parser('board', help='Show the board grouped by lane')
    tboard.add_argument('--json', action='store_true')
    tboard.set_defaults(func=_task_board)
    tcycles = task_sub.add_parser('cycles', help='List dependency cycles')
    tcycles.set_defaults(func=_task_cycles)

    agent = subparsers.add_parser('agent', help='Manage agents')
    agent_sub = agent.add_subparsers(dest='agent_cmd', required=True)
    aregister = agent_sub.add_parser('register', help='Register or update an agent')
    aregister.add_argument('agent_id')
    aregister.add_argument('--name', default=None)
    aregister.add_argument('--emoji', default=None)
    aregister.add_argument('--role', action='append', default=None, help='Role tag(s), comma separated or repeated')
    aregister.add_argument('--model', default=None)
    aregister.add_argument('--status', default='online', choices=['online', 'offline', 'busy'])
    aregister.set_defaults(func=_agent_register)
    alist = agent_sub.add_parser('list', help='List agents')
    alist.add_argument('--status', default=None, choices=['online', 'offline', 'busy'])
    alist.add_argument('--role', default=None)
    alist.add_argument('--json', action='store_true')
    alist.set_defaults(func=_agent_list)
    aheartbeat = agent_sub.add_parser('heartbeat', help='Record an agent heartbeat')
    aheartbeat.add_argument('agent_id')
    aheartbeat.add_argument('--status', default=None, choices=['online', 'offline', 'busy'])
    aheartbeat.add_argument('--task', default=None, help='Current task id')
    aheartbeat.set_defaults(func=_agent_heartbeat)
    aworkload = agent_sub.add_parser('workload', help='Show agents ordered by workload')
    aworkload.set_defaults(func=_agent_workload)
    aprune = agent_sub.add_parser('prune', help='Remove idle agents with stale heartbeats')
    aprune.add_argument('--max-age', type=int, default=None, help='Seconds (default: config agents.stale_after_seconds)')
    aprune.set_defaults(func=_agent_prune)

    notifications = subparsers.add_parser('notifications', help='Read agent notifications')
    notif_sub = notifications.add_subparsers(dest='notifications_cmd', required=True)
    nlist = notif_sub.add_parser('list', help='List notifications for an agent')
    nlist.add_argument('agent_id')
    nlist.add_argument('--unread', action='store_true')
    nlist.set_defaults(func=_notifications_list)

    activity = subparsers.add_parser('activity', help='Show the recent activity feed')
    activity.add_argument('--limit', type=int, default=50)
    activity.set_defaults(func=_activity)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    handler = getattr(args, 'func', None)
    if handler is None:
        parser.print_help()
        return 1
    level = args.log_level
    if level is None:
        config, _ = load_center_config(_resolve_project_dir(args.project_dir))
        level = get_log_level(config)
    configure_logging(level)
    try:
        return int(handler(args) or 0)
    except ClawError as exc:
        sys.stderr.write(f"{exc}\n")
        return 1
