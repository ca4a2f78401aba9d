"""
Main CLI for jira-ticket-cli
"""

import click
import functools
import json
import logging
import sys
from typing import Any, Dict, Optional, Tuple
from rich.console import Console
from rich.logging import RichHandler

from . import __version__
from .adf import Description
from .config import Config, OUTPUT_FORMATS
from .errors import ConfigError, DocumentParseError, JiraError
from .jira_client import JiraClient, find_transition_by_name
from .markdown_converter import markdown_to_adf, text_to_adf
from .view import View, truncate
from .wiki_converter import is_wiki_markup, wiki_to_markdown

console = Console()
err_console = Console(stderr=True)

ISSUE_HEADERS = ["KEY", "SUMMARY", "STATUS", "ASSIGNEE", "TYPE"]


def setup_logging(level: str = "WARNING"):
    """Setup logging with rich handler"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=True)]
    )


def handle_errors(func):
    """Report JiraError failures and exit with the matching exit code"""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except JiraError as e:
            View(console=err_console).error(str(e))
            sys.exit(e.exit_code)
    return wrapper


def get_view(ctx) -> View:
    return ctx.obj['view']


def get_client(ctx) -> JiraClient:
    """Create the API client on first use"""
    if ctx.obj.get('client') is None:
        config = ctx.obj['config']
        config.require_credentials()
        ctx.obj['client'] = JiraClient(config.jira_url, config.jira_email, api_token=config.api_token)
    return ctx.obj['client']


def read_text(value: Optional[str]) -> Optional[str]:
    """Return the option value, reading stdin when it is "-" """
    if value == '-':
        return sys.stdin.read()
    return value


def parse_fields(values: Tuple[str, ...]) -> Dict[str, str]:
    """Parse repeated --field key=value options"""
    fields = {}
    for value in values:
        key, sep, field_value = value.partition('=')
        if not sep or not key.strip():
            raise click.BadParameter(f"invalid field format: {value} (expected key=value)",
                                     param_hint="'--field'")
        fields[key.strip()] = field_value
    return fields


def build_fields(client: JiraClient, values: Tuple[str, ...]) -> Dict[str, Any]:
    """Parse --field options and shape the values for the API by field type"""
    fields = parse_fields(values)
    if not fields:
        return {}
    return client.resolve_fields(fields)


def issue_rows(issues):
    return [
        [issue.key, truncate(issue.summary, 50), issue.status,
         issue.assignee or '-', issue.issue_type]
        for issue in issues
    ]


def show_issues(view: View, issues):
    if view.is_json:
        view.json([issue.to_dict() for issue in issues])
    elif not issues:
        view.info("No issues found")
    else:
        view.table(ISSUE_HEADERS, issue_rows(issues))


@click.group()
@click.option('--config', '-c', help='Configuration file path')
@click.option('--output', '-o', type=click.Choice(OUTPUT_FORMATS), help='Output format')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.version_option(__version__, prog_name='jira-ticket-cli')
@click.pass_context
def cli(ctx, config, output, verbose):
    """jira-ticket-cli: manage Jira tickets from the command line"""
    ctx.ensure_object(dict)

    try:
        ctx.obj['config'] = Config(config)
    except ConfigError as e:
        View(console=err_console).error(str(e))
        sys.exit(e.exit_code)

    setup_logging("DEBUG" if verbose else ctx.obj['config'].log_level)
    ctx.obj['view'] = View(output or ctx.obj['config'].output, console)


@cli.group()
def issues():
    """Create, view and update issues"""


@issues.command('get')
@click.argument('issue_key')
@click.pass_context
@handle_errors
def issues_get(ctx, issue_key):
    """Show an issue"""
    view = get_view(ctx)
    issue = get_client(ctx).get_issue(issue_key)

    if view.is_json:
        view.json(issue.to_dict())
        return

    view.field("Key", issue.key)
    view.field("Summary", issue.summary)
    view.field("Status", issue.status)
    view.field("Type", issue.issue_type)
    view.field("Priority", issue.priority or '-')
    view.field("Assignee", issue.assignee or 'Unassigned')
    view.field("Reporter", issue.reporter or '-')
    view.field("Project", issue.project_key)
    if issue.labels:
        view.field("Labels", ', '.join(issue.labels))
    view.field("Created", issue.created)
    view.field("Updated", issue.updated)
    view.field("URL", issue.url)

    description = issue.description.to_plain_text().strip()
    if description:
        view.text("")
        view.field("Description", "")
        view.text(description)


@issues.command('list')
@click.option('--project', '-p', help='Filter by project key')
@click.option('--sprint', '-s', help="Filter by sprint ID (use 'current' for the active sprint)")
@click.option('--mine', is_flag=True, help='Only issues assigned to me')
@click.option('--max', '-m', 'max_results', default=50, show_default=True, help='Maximum number of results')
@click.pass_context
@handle_errors
def issues_list(ctx, project, sprint, mine, max_results):
    """List issues"""
    clauses = []
    if project:
        clauses.append(f'project = "{project}"')
    if sprint:
        clauses.append("sprint in openSprints()" if sprint == 'current' else f"sprint = {sprint}")
    if mine:
        clauses.append("assignee = currentUser()")
    if not clauses:
        raise click.UsageError("Specify at least one of --project, --sprint or --mine")

    jql = " AND ".join(clauses) + " ORDER BY updated DESC"
    show_issues(get_view(ctx), get_client(ctx).search_issues(jql, limit=max_results))


@issues.command('search')
@click.option('--jql', required=True, help='JQL query string')
@click.option('--max', '-m', 'max_results', default=50, show_default=True, help='Maximum number of results')
@click.pass_context
@handle_errors
def issues_search(ctx, jql, max_results):
    """Search issues with JQL"""
    show_issues(get_view(ctx), get_client(ctx).search_issues(jql, limit=max_results))


@issues.command('create')
@click.option('--project', '-p', required=True, help='Project key')
@click.option('--type', '-t', 'issue_type', default='Task', show_default=True, help='Issue type')
@click.option('--summary', '-s', required=True, help='Issue summary')
@click.option('--description', '-d', help="Description as Markdown or wiki markup ('-' reads stdin)")
@click.option('--field', '-f', 'field_values', multiple=True, help='Additional field (key=value)')
@click.pass_context
@handle_errors
def issues_create(ctx, project, issue_type, summary, description, field_values):
    """Create a new issue"""
    view = get_view(ctx)
    client = get_client(ctx)
    issue = client.create_issue(project, issue_type, summary,
                                description=read_text(description),
                                fields=build_fields(client, field_values))
    if view.is_json:
        view.json(issue.to_dict())
        return
    view.success(f"Created issue {issue.key}")
    view.info(f"URL: {client.issue_url(issue.key)}")


@issues.command('update')
@click.argument('issue_key')
@click.option('--summary', '-s', help='New summary')
@click.option('--description', '-d', help="New description ('-' reads stdin)")
@click.option('--field', '-f', 'field_values', multiple=True, help='Field to update (key=value)')
@click.pass_context
@handle_errors
def issues_update(ctx, issue_key, summary, description, field_values):
    """Update an issue"""
    client = get_client(ctx)
    client.update_issue(issue_key, summary=summary,
                        description=read_text(description),
                        fields=build_fields(client, field_values))
    get_view(ctx).success(f"Updated issue {issue_key.upper()}")


@issues.command('delete')
@click.argument('issue_key')
@click.option('--force', is_flag=True, help='Skip confirmation prompt')
@click.option('--delete-subtasks', is_flag=True, help='Also delete subtasks')
@click.pass_context
@handle_errors
def issues_delete(ctx, issue_key, force, delete_subtasks):
    """Delete an issue"""
    if not force:
        click.confirm(f"Delete issue {issue_key.upper()}?", abort=True)
    get_client(ctx).delete_issue(issue_key, delete_subtasks=delete_subtasks)
    get_view(ctx).success(f"Deleted issue {issue_key.upper()}")


@issues.command('assign')
@click.argument('issue_key')
@click.argument('account_id', required=False)
@click.option('--unassign', is_flag=True, help='Remove current assignee')
@click.pass_context
@handle_errors
def issues_assign(ctx, issue_key, account_id, unassign):
    """Assign an issue (to yourself when no account ID is given)"""
    client = get_client(ctx)
    view = get_view(ctx)

    if unassign:
        client.assign_issue(issue_key, None)
        view.success(f"Unassigned {issue_key.upper()}")
        return

    if not account_id:
        account_id = client.get_myself().account_id
    client.assign_issue(issue_key, account_id)
    view.success(f"Assigned {issue_key.upper()} to {account_id}")


@cli.group()
def comments():
    """Manage issue comments"""


@comments.command('list')
@click.argument('issue_key')
@click.option('--max', '-m', 'max_results', default=50, show_default=True, help='Maximum number of comments')
@click.pass_context
@handle_errors
def comments_list(ctx, issue_key, max_results):
    """List comments on an issue"""
    view = get_view(ctx)
    result = get_client(ctx).get_comments(issue_key, max_results=max_results)

    if view.is_json:
        view.json([comment.to_dict() for comment in result])
    elif not result:
        view.info(f"No comments on {issue_key.upper()}")
    else:
        view.table(["ID", "AUTHOR", "CREATED", "BODY"], [
            [comment.id, comment.author, comment.created[:16],
             truncate(comment.body.to_plain_text(), 60)]
            for comment in result
        ])


@comments.command('add')
@click.argument('issue_key')
@click.option('--body', '-b', required=True, help="Comment text as Markdown or wiki markup ('-' reads stdin)")
@click.pass_context
@handle_errors
def comments_add(ctx, issue_key, body):
    """Add a comment to an issue"""
    view = get_view(ctx)
    comment = get_client(ctx).add_comment(issue_key, read_text(body))
    if view.is_json:
        view.json(comment.to_dict())
    else:
        view.success(f"Added comment {comment.id} to {issue_key.upper()}")


@comments.command('delete')
@click.argument('issue_key')
@click.argument('comment_id')
@click.pass_context
@handle_errors
def comments_delete(ctx, issue_key, comment_id):
    """Delete a comment"""
    get_client(ctx).delete_comment(issue_key, comment_id)
    get_view(ctx).success(f"Deleted comment {comment_id}")


@cli.group()
def transitions():
    """List and perform workflow transitions"""


@transitions.command('list')
@click.argument('issue_key')
@click.pass_context
@handle_errors
def transitions_list(ctx, issue_key):
    """List transitions available on an issue"""
    view = get_view(ctx)
    result = get_client(ctx).get_transitions(issue_key)

    if view.is_json:
        view.json([transition.to_dict() for transition in result])
    elif not result:
        view.info(f"No transitions available for {issue_key.upper()}")
    else:
        view.table(["ID", "NAME", "TO STATUS"],
                   [[t.id, t.name, t.to_status] for t in result])


@transitions.command('do')
@click.argument('issue_key')
@click.argument('transition')
@click.option('--field', '-f', 'field_values', multiple=True, help='Field to set during transition (key=value)')
@click.pass_context
@handle_errors
def transitions_do(ctx, issue_key, transition, field_values):
    """Move an issue through a transition (by name or ID)"""
    client = get_client(ctx)
    available = client.get_transitions(issue_key)
    match = find_transition_by_name(available, transition)
    if match is None:
        names = ', '.join(t.name for t in available) or 'none'
        raise JiraError(f"Transition '{transition}' not found (available: {names})")

    client.do_transition(issue_key, match.id, fields=build_fields(client, field_values))
    get_view(ctx).success(f"Transitioned {issue_key.upper()} to {match.to_status or match.name}")


@cli.group()
def boards():
    """List agile boards"""


@boards.command('list')
@click.option('--project', '-p', help='Filter by project key')
@click.option('--max', '-m', 'max_results', default=50, show_default=True, help='Maximum number of results')
@click.pass_context
@handle_errors
def boards_list(ctx, project, max_results):
    """List boards"""
    view = get_view(ctx)
    result = get_client(ctx).list_boards(project=project, max_results=max_results)

    if view.is_json:
        view.json([board.to_dict() for board in result])
    elif not result:
        view.info("No boards found")
    else:
        view.table(["ID", "NAME", "TYPE", "PROJECT"],
                   [[b.id, b.name, b.type, b.project_key] for b in result])


@boards.command('get')
@click.argument('board_id', type=int)
@click.pass_context
@handle_errors
def boards_get(ctx, board_id):
    """Show a board"""
    view = get_view(ctx)
    board = get_client(ctx).get_board(board_id)
    if view.is_json:
        view.json(board.to_dict())
        return
    view.field("ID", board.id)
    view.field("Name", board.name)
    view.field("Type", board.type)
    view.field("Project", board.project_key or '-')


@cli.group()
def sprints():
    """Work with sprints"""


def show_sprints(view: View, result):
    if view.is_json:
        view.json([sprint.to_dict() for sprint in result])
    elif not result:
        view.info("No sprints found")
    else:
        view.table(["ID", "NAME", "STATE", "START", "END"], [
            [s.id, s.name, s.state, s.start_date[:10], s.end_date[:10]]
            for s in result
        ])


@sprints.command('list')
@click.option('--board', '-b', 'board_id', type=int, required=True, help='Board ID')
@click.option('--state', '-s', type=click.Choice(['active', 'closed', 'future']), help='Filter by state')
@click.option('--max', '-m', 'max_results', default=50, show_default=True, help='Maximum number of results')
@click.pass_context
@handle_errors
def sprints_list(ctx, board_id, state, max_results):
    """List sprints of a board"""
    show_sprints(get_view(ctx), get_client(ctx).list_sprints(board_id, state=state, max_results=max_results))


@sprints.command('current')
@click.option('--board', '-b', 'board_id', type=int, required=True, help='Board ID')
@click.pass_context
@handle_errors
def sprints_current(ctx, board_id):
    """Show the active sprint of a board"""
    show_sprints(get_view(ctx), [get_client(ctx).get_current_sprint(board_id)])


@sprints.command('issues')
@click.argument('sprint_id', type=int)
@click.option('--max', '-m', 'max_results', default=50, show_default=True, help='Maximum number of results')
@click.pass_context
@handle_errors
def sprints_issues(ctx, sprint_id, max_results):
    """List issues in a sprint"""
    show_issues(get_view(ctx), get_client(ctx).get_sprint_issues(sprint_id, max_results=max_results))


@sprints.command('add')
@click.argument('sprint_id', type=int)
@click.argument('issue_keys', nargs=-1, required=True)
@click.pass_context
@handle_errors
def sprints_add(ctx, sprint_id, issue_keys):
    """Move issues into a sprint"""
    get_client(ctx).move_issues_to_sprint(sprint_id, list(issue_keys))
    get_view(ctx).success(f"Moved {len(issue_keys)} issue(s) to sprint {sprint_id}")


@cli.group()
def users():
    """Look up users"""


@users.command('search')
@click.argument('query')
@click.option('--max', 'max_results', default=10, show_default=True, help='Maximum number of results')
@click.pass_context
@handle_errors
def users_search(ctx, query, max_results):
    """Search users by name or email"""
    view = get_view(ctx)
    result = get_client(ctx).search_users(query, max_results=max_results)

    if view.is_json:
        view.json([user.to_dict() for user in result])
    elif not result:
        view.info(f"No users matching '{query}'")
    else:
        view.table(["ACCOUNT_ID", "NAME", "EMAIL", "ACTIVE"], [
            [u.account_id, u.display_name, u.email or '-', 'yes' if u.active else 'no']
            for u in result
        ])


@cli.command()
@click.pass_context
@handle_errors
def me(ctx):
    """Show the authenticated user"""
    view = get_view(ctx)
    user = get_client(ctx).get_myself()
    if view.is_json:
        view.json(user.to_dict())
        return
    view.field("Account ID", user.account_id)
    view.field("Name", user.display_name)
    view.field("Email", user.email or '-')
    view.field("Time zone", user.time_zone or '-')


@cli.group('config')
def config_cmd():
    """Configure jira-ticket-cli settings"""


@config_cmd.command('set')
@click.option('--url', help='Jira URL (e.g. https://your-company.atlassian.net)')
@click.option('--email', help='Jira account email')
@click.option('--token', help='Jira API token (stored in the system keyring)')
@click.pass_context
@handle_errors
def config_set(ctx, url, email, token):
    """Configure Jira credentials"""
    config = ctx.obj['config']
    view = get_view(ctx)

    if not url:
        url = click.prompt(
            "Jira URL",
            default=config.jira_url or "https://your-company.atlassian.net"
        )
    if not email:
        email = click.prompt("Jira Email", default=config.jira_email or None)
    if not token:
        token = click.prompt("Jira API Token", hide_input=True)

    config.set('jira.url', url)
    config.set('jira.email', email)
    JiraClient.store_api_token(email, token)
    config.save()
    view.success(f"Configuration saved to {config.config_path}")

    try:
        if JiraClient(url, email, api_token=token).test_connection():
            view.success("Jira connection successful")
        else:
            view.error("Jira connection failed")
    except JiraError as e:
        view.error(f"Jira connection failed: {e}")


@config_cmd.command('show')
@click.pass_context
def config_show(ctx):
    """Show current configuration"""
    config = ctx.obj['config']
    view = get_view(ctx)

    data = {
        'path': str(config.config_path),
        'url': config.jira_url,
        'email': config.jira_email,
        'output': config.output,
        'log_level': config.log_level,
    }
    if view.is_json:
        view.json(data)
        return
    view.field("Config file", data['path'])
    view.field("URL", data['url'] or 'Not set')
    view.field("Email", data['email'] or 'Not set')
    view.field("Output", data['output'])
    view.field("Log level", data['log_level'])


@config_cmd.command('clear')
@click.option('--force', is_flag=True, help='Skip confirmation prompt')
@click.pass_context
@handle_errors
def config_clear(ctx, force):
    """Remove stored configuration and API token"""
    config = ctx.obj['config']
    if not force:
        click.confirm("Remove stored Jira configuration?", abort=True)
    email = config.jira_email
    config.clear()
    if email:
        JiraClient.delete_api_token(email)
    get_view(ctx).success("Configuration cleared")


@cli.command()
@click.argument('text', required=False)
@click.option('--from', 'source', type=click.Choice(['auto', 'markdown', 'wiki']), default='auto',
              show_default=True, help='Input syntax')
@click.option('--to', 'target', type=click.Choice(['adf', 'markdown', 'plain']), default='adf',
              show_default=True, help="Output representation ('plain' reads ADF JSON)")
@click.pass_context
@handle_errors
def convert(ctx, text, source, target):
    """Convert text between Markdown, wiki markup and ADF (reads stdin without TEXT)"""
    view = get_view(ctx)
    if text is None:
        text = sys.stdin.read()

    if target == 'plain':
        try:
            value = json.loads(text)
        except ValueError as e:
            raise DocumentParseError(f"Input is not valid JSON: {e}")
        view.text(Description.from_json(value).to_plain_text())
        return

    wiki = source == 'wiki' or (source == 'auto' and is_wiki_markup(text))

    if target == 'markdown':
        view.text(wiki_to_markdown(text) if wiki else text)
        return

    if source == 'auto':
        document = text_to_adf(text)
    else:
        document = markdown_to_adf(wiki_to_markdown(text) if wiki else text)
    view.json(document.to_dict() if document is not None else None)


if __name__ == '__main__':
    cli()
