"""
JIRA API client for jira-ticket-cli
"""

import requests
import keyring
from keyring.errors import PasswordDeleteError
import logging
import re
from typing import Dict, Any, Optional, List
from urllib.parse import quote

from .adf import Description
from .config import normalize_url
from .errors import ConfigError, JiraError, NotFoundError, parse_api_error
from .markdown_converter import text_to_adf

logger = logging.getLogger(__name__)

KEYRING_SERVICE = "jira-ticket-cli"

ISSUE_KEY_PATTERN = re.compile(r'^[A-Z][A-Z0-9_]*-\d+$')

TEXTAREA_FIELD_TYPE = "com.atlassian.jira.plugin.system.customfieldtypes:textarea"

DEFAULT_ISSUE_FIELDS = (
    'summary', 'description', 'issuetype', 'status', 'priority',
    'assignee', 'reporter', 'project', 'created', 'updated', 'labels',
)


class JiraResource:
    """Base for thin wrappers around JSON objects returned by the API"""

    def __init__(self, data: Dict[str, Any]):
        self.data = data or {}

    def to_dict(self) -> Dict[str, Any]:
        return self.data


class JiraUser(JiraResource):
    """Represents a JIRA user"""

    @property
    def account_id(self) -> str:
        return self.data.get('accountId', '')

    @property
    def display_name(self) -> str:
        return self.data.get('displayName') or self.data.get('name', '')

    @property
    def email(self) -> str:
        return self.data.get('emailAddress', '')

    @property
    def active(self) -> bool:
        return bool(self.data.get('active', False))

    @property
    def time_zone(self) -> str:
        return self.data.get('timeZone', '')


class JiraIssue(JiraResource):
    """Represents a JIRA issue"""

    @property
    def id(self) -> str:
        return self.data.get('id', '')

    @property
    def key(self) -> str:
        """Issue key (e.g., PROJ-123)"""
        return self.data.get('key', '')

    @property
    def fields(self) -> Dict[str, Any]:
        return self.data.get('fields') or {}

    @property
    def summary(self) -> str:
        """Issue summary/title"""
        return self.fields.get('summary', '')

    @property
    def description(self) -> Description:
        """
        Issue description

        REST API v3 returns an ADF document while the Agile API returns a
        plain string; both end up as a Description.
        """
        return Description.from_json(self.fields.get('description'))

    @property
    def issue_type(self) -> str:
        """Issue type (e.g., Bug, Story, Task)"""
        return (self.fields.get('issuetype') or {}).get('name', '')

    @property
    def status(self) -> str:
        """Issue status"""
        return (self.fields.get('status') or {}).get('name', '')

    @property
    def priority(self) -> str:
        return (self.fields.get('priority') or {}).get('name', '')

    @property
    def assignee(self) -> Optional[str]:
        """Issue assignee"""
        assignee = self.fields.get('assignee')
        if assignee:
            return assignee.get('displayName') or assignee.get('name')
        return None

    @property
    def reporter(self) -> Optional[str]:
        reporter = self.fields.get('reporter')
        if reporter:
            return reporter.get('displayName') or reporter.get('name')
        return None

    @property
    def project_key(self) -> str:
        return (self.fields.get('project') or {}).get('key', '')

    @property
    def labels(self) -> List[str]:
        return list(self.fields.get('labels') or [])

    @property
    def created(self) -> str:
        return self.fields.get('created', '')

    @property
    def updated(self) -> str:
        return self.fields.get('updated', '')

    @property
    def url(self) -> str:
        """Issue URL (will be set by JiraClient)"""
        return getattr(self, '_url', '')

    def set_url(self, base_url: str):
        """Set the issue URL based on base URL"""
        self._url = f"{normalize_url(base_url)}/browse/{self.key}"


class JiraComment(JiraResource):
    """Represents a comment on a JIRA issue"""

    @property
    def id(self) -> str:
        return str(self.data.get('id', ''))

    @property
    def author(self) -> str:
        author = self.data.get('author') or {}
        return author.get('displayName') or author.get('name', '')

    @property
    def created(self) -> str:
        return self.data.get('created', '')

    @property
    def body(self) -> Description:
        return Description.from_json(self.data.get('body'))


class JiraTransition(JiraResource):
    """Represents a workflow transition available on an issue"""

    @property
    def id(self) -> str:
        return str(self.data.get('id', ''))

    @property
    def name(self) -> str:
        return self.data.get('name', '')

    @property
    def to_status(self) -> str:
        return (self.data.get('to') or {}).get('name', '')

    @property
    def required_fields(self) -> List[str]:
        fields = self.data.get('fields') or {}
        return [field_id for field_id, meta in fields.items() if meta.get('required')]


class JiraBoard(JiraResource):
    """Represents an agile board"""

    @property
    def id(self) -> int:
        return self.data.get('id', 0)

    @property
    def name(self) -> str:
        return self.data.get('name', '')

    @property
    def type(self) -> str:
        return self.data.get('type', '')

    @property
    def project_key(self) -> str:
        return (self.data.get('location') or {}).get('projectKey', '')


class JiraSprint(JiraResource):
    """Represents an agile sprint"""

    @property
    def id(self) -> int:
        return self.data.get('id', 0)

    @property
    def name(self) -> str:
        return self.data.get('name', '')

    @property
    def state(self) -> str:
        return self.data.get('state', '')

    @property
    def start_date(self) -> str:
        return self.data.get('startDate', '')

    @property
    def end_date(self) -> str:
        return self.data.get('endDate', '')

    @property
    def goal(self) -> str:
        return self.data.get('goal', '')


class JiraField(JiraResource):
    """Represents a field definition (system or custom)"""

    @property
    def id(self) -> str:
        return self.data.get('id', '')

    @property
    def name(self) -> str:
        return self.data.get('name', '')

    @property
    def custom(self) -> bool:
        return bool(self.data.get('custom', False))

    @property
    def schema(self) -> Dict[str, Any]:
        """Type information: ``type``, ``items`` for arrays, ``custom`` plugin key"""
        return self.data.get('schema') or {}


def find_transition_by_name(transitions: List[JiraTransition], name: str) -> Optional[JiraTransition]:
    """
    Find a transition by name (case-insensitive) or by ID

    Args:
        transitions: Transitions available on an issue
        name: Transition name or ID

    Returns:
        Matching transition, or None
    """
    wanted = name.strip().lower()
    for transition in transitions:
        if transition.name.lower() == wanted:
            return transition
    for transition in transitions:
        if transition.id == name.strip():
            return transition
    return None


def _rich_text(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """Convert user text (Markdown or wiki markup) to an ADF request value"""
    document = text_to_adf(text)
    return document.to_dict() if document is not None else None


def find_field(fields: List[JiraField], name_or_id: str) -> Optional[JiraField]:
    """
    Find a field by exact ID, then by name (case-insensitive)

    Args:
        fields: Field definitions from JiraClient.get_fields
        name_or_id: Field ID (e.g. customfield_10010) or display name

    Returns:
        Matching field, or None
    """
    for field in fields:
        if field.id == name_or_id:
            return field
    wanted = name_or_id.strip().lower()
    for field in fields:
        if field.name.lower() == wanted:
            return field
    return None


def resolve_field_id(fields: List[JiraField], name_or_id: str) -> str:
    """Field ID for a name or ID; raises JiraError when no field matches"""
    field = find_field(fields, name_or_id)
    if field is None:
        raise JiraError(f"Field not found: {name_or_id}")
    return field.id


def format_field_value(field: Optional[JiraField], value: str) -> Any:
    """
    Shape a command-line value the way the API expects for the field's type

    Multi-line text custom fields take ADF, so the value is converted from
    Markdown or wiki markup. Unknown fields get the string unchanged.
    """
    if field is None:
        return value

    schema = field.schema
    if schema.get('custom') == TEXTAREA_FIELD_TYPE:
        return _rich_text(value)

    field_type = schema.get('type')
    if field_type == 'option':
        return {'value': value}
    if field_type == 'array':
        if schema.get('items') == 'option':
            return [{'value': value}]
        return [value]
    if field_type == 'user':
        return {'accountId': value}
    if field_type == 'number':
        try:
            return float(value)
        except ValueError:
            return value
    return value


class JiraClient:
    """JIRA API client"""

    def __init__(self, server_url: str, email: str, api_token: Optional[str] = None, timeout: int = 30):
        """
        Initialize JIRA client

        Args:
            server_url: JIRA server URL
            email: User email for authentication
            api_token: API token; looked up in the keyring when omitted
            timeout: Request timeout in seconds
        """
        self.server_url = normalize_url(server_url)
        if not self.server_url:
            raise ConfigError("Jira URL is required")
        if not email:
            raise ConfigError("Jira email is required")

        self.email = email
        self.timeout = timeout
        self.api_url = f"{self.server_url}/rest/api/3"
        self.agile_url = f"{self.server_url}/rest/agile/1.0"
        self.session = requests.Session()

        self._setup_authentication(api_token)

    def _setup_authentication(self, api_token: Optional[str]):
        """Setup basic authentication, reading the token from keyring if needed"""
        if not api_token:
            api_token = keyring.get_password(KEYRING_SERVICE, self.email)

        if not api_token:
            logger.warning(f"No JIRA API token found in keyring for {self.email}")
            raise ConfigError(
                "JIRA API token not found. Run 'jira-ticket-cli config set' or set JIRA_API_TOKEN.")

        self.session.auth = (self.email, api_token)
        self.session.headers.update({
            'Accept': 'application/json',
            'Content-Type': 'application/json'
        })

    @classmethod
    def store_api_token(cls, email: str, api_token: str):
        """Store API token in keyring"""
        try:
            keyring.set_password(KEYRING_SERVICE, email, api_token)
            logger.info(f"JIRA API token stored securely for {email}")
        except Exception as e:
            logger.error(f"Failed to store JIRA API token: {e}")
            raise

    @classmethod
    def delete_api_token(cls, email: str):
        """Remove API token from keyring"""
        try:
            keyring.delete_password(KEYRING_SERVICE, email)
            logger.info(f"JIRA API token removed for {email}")
        except PasswordDeleteError:
            logger.debug(f"No JIRA API token stored for {email}")

    def _request(self, method: str, url: str, **kwargs) -> Any:
        """
        Perform an authenticated request

        Returns:
            Decoded JSON body, or None for empty responses

        Raises:
            APIError: For HTTP error responses (status-specific subclasses)
            JiraError: If the request could not be made
        """
        logger.debug(f"→ {method} {url}")
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            logger.error(f"Request to {url} failed: {e}")
            raise JiraError(f"Request failed: {e}") from e

        logger.debug(f"← {response.status_code} {response.reason}")

        if response.status_code >= 400:
            raise parse_api_error(response)

        if response.status_code == 204 or not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            raise JiraError(f"Invalid JSON response from {url}") from e

    def _normalize_issue_key(self, issue_key: str) -> str:
        issue_key = (issue_key or '').strip().upper()
        if not ISSUE_KEY_PATTERN.match(issue_key):
            raise JiraError(f"Invalid JIRA issue key format: {issue_key}")
        return issue_key

    def _issue_path(self, issue_key: str) -> str:
        return f"{self.api_url}/issue/{quote(self._normalize_issue_key(issue_key))}"

    def issue_url(self, issue_key: str) -> str:
        """Web URL for an issue"""
        return f"{self.server_url}/browse/{issue_key}"

    def test_connection(self) -> bool:
        """Test JIRA connection"""
        try:
            self.get_myself()
            logger.info("JIRA connection test successful")
            return True
        except JiraError as e:
            logger.error(f"JIRA connection test failed: {e}")
            return False

    def get_myself(self) -> JiraUser:
        """Get the authenticated user"""
        return JiraUser(self._request('GET', f"{self.api_url}/myself"))

    def search_users(self, query: str, max_results: int = 10) -> List[JiraUser]:
        """Search users by name or email"""
        data = self._request('GET', f"{self.api_url}/user/search",
                             params={'query': query, 'maxResults': max_results})
        return [JiraUser(user) for user in data or []]

    def get_fields(self) -> List[JiraField]:
        """Get all field definitions"""
        data = self._request('GET', f"{self.api_url}/field")
        return [JiraField(field) for field in data or []]

    def resolve_fields(self, values: Dict[str, str]) -> Dict[str, Any]:
        """
        Map field names to IDs and format values by field type

        Args:
            values: Raw values keyed by field name or ID

        Returns:
            Request-ready values keyed by field ID; names that match no
            field are passed through unchanged
        """
        fields = self.get_fields()
        resolved = {}
        for key, value in values.items():
            field = find_field(fields, key)
            if field is None:
                logger.debug(f"Unknown field '{key}', sending as given")
            resolved[field.id if field else key] = format_field_value(field, value)
        return resolved

    def get_issue(self, issue_key: str) -> JiraIssue:
        """
        Get JIRA issue by key

        Args:
            issue_key: JIRA issue key (e.g., PROJ-123)

        Returns:
            JiraIssue object

        Raises:
            JiraError: If the key is malformed
            NotFoundError: If the issue does not exist
        """
        try:
            data = self._request('GET', self._issue_path(issue_key))
        except NotFoundError:
            raise NotFoundError(f"JIRA issue not found: {issue_key.strip().upper()}", status_code=404)

        issue = JiraIssue(data)
        issue.set_url(self.server_url)
        logger.info(f"Retrieved JIRA issue: {issue.key} - {issue.summary}")
        return issue

    def search_issues(self, jql: str, limit: int = 50,
                      fields: Optional[List[str]] = None) -> List[JiraIssue]:
        """
        Search issues with JQL

        Args:
            jql: JQL query
            limit: Maximum number of issues to return
            fields: Fields to fetch (defaults to DEFAULT_ISSUE_FIELDS)

        Returns:
            List of JiraIssue objects
        """
        params = {
            'jql': jql,
            'maxResults': limit,
            'fields': ','.join(fields or DEFAULT_ISSUE_FIELDS),
        }
        data = self._request('GET', f"{self.api_url}/search/jql", params=params) or {}

        issues = []
        for issue_data in data.get('issues', []):
            issue = JiraIssue(issue_data)
            issue.set_url(self.server_url)
            issues.append(issue)

        logger.info(f"Found {len(issues)} issues")
        return issues

    def search_my_issues(self, limit: int = 15) -> List[JiraIssue]:
        """Issues assigned to the current user that are not done, most recent first"""
        jql = "assignee = currentUser() AND statusCategory != Done ORDER BY updated DESC"
        return self.search_issues(jql, limit=limit)

    def create_issue(self, project: str, issue_type: str, summary: str,
                     description: Optional[str] = None,
                     fields: Optional[Dict[str, Any]] = None) -> JiraIssue:
        """
        Create an issue

        Args:
            project: Project key
            issue_type: Issue type name (Task, Bug, Story, ...)
            summary: Issue summary
            description: Description as Markdown or wiki markup
            fields: Additional fields keyed by field ID

        Returns:
            JiraIssue with id and key of the new issue
        """
        if not project:
            raise JiraError("Project key is required")
        if not summary:
            raise JiraError("Summary is required")

        issue_fields: Dict[str, Any] = {
            'project': {'key': project},
            'issuetype': {'name': issue_type},
            'summary': summary,
        }
        if description:
            issue_fields['description'] = _rich_text(description)
        issue_fields.update(fields or {})

        data = self._request('POST', f"{self.api_url}/issue", json={'fields': issue_fields})
        issue = JiraIssue(data)
        issue.set_url(self.server_url)
        logger.info(f"Created JIRA issue: {issue.key}")
        return issue

    def update_issue(self, issue_key: str, summary: Optional[str] = None,
                     description: Optional[str] = None,
                     fields: Optional[Dict[str, Any]] = None):
        """Update summary, description and/or other fields of an issue"""
        issue_fields: Dict[str, Any] = {}
        if summary:
            issue_fields['summary'] = summary
        if description:
            issue_fields['description'] = _rich_text(description)
        issue_fields.update(fields or {})

        if not issue_fields:
            raise JiraError("No fields to update")

        self._request('PUT', self._issue_path(issue_key), json={'fields': issue_fields})
        logger.info(f"Updated JIRA issue: {issue_key}")

    def delete_issue(self, issue_key: str, delete_subtasks: bool = False):
        """Delete an issue"""
        params = {'deleteSubtasks': 'true'} if delete_subtasks else None
        self._request('DELETE', self._issue_path(issue_key), params=params)
        logger.info(f"Deleted JIRA issue: {issue_key}")

    def assign_issue(self, issue_key: str, account_id: Optional[str]):
        """Assign an issue to a user; None removes the assignee"""
        self._request('PUT', f"{self._issue_path(issue_key)}/assignee",
                      json={'accountId': account_id})

    def get_comments(self, issue_key: str, max_results: int = 50) -> List[JiraComment]:
        """Get comments on an issue"""
        data = self._request('GET', f"{self._issue_path(issue_key)}/comment",
                             params={'maxResults': max_results}) or {}
        return [JiraComment(comment) for comment in data.get('comments', [])]

    def add_comment(self, issue_key: str, body: str) -> JiraComment:
        """
        Add a comment to an issue

        Args:
            issue_key: JIRA issue key
            body: Comment text as Markdown or wiki markup

        Returns:
            The created comment
        """
        if not body:
            raise JiraError("Comment body is required")
        data = self._request('POST', f"{self._issue_path(issue_key)}/comment",
                             json={'body': _rich_text(body)})
        return JiraComment(data)

    def delete_comment(self, issue_key: str, comment_id: str):
        """Delete a comment from an issue"""
        if not comment_id:
            raise JiraError("Comment ID is required")
        self._request('DELETE', f"{self._issue_path(issue_key)}/comment/{quote(str(comment_id), safe='')}")

    def get_transitions(self, issue_key: str, include_fields: bool = False) -> List[JiraTransition]:
        """Get transitions available on an issue, optionally with field metadata"""
        params = {'expand': 'transitions.fields'} if include_fields else None
        data = self._request('GET', f"{self._issue_path(issue_key)}/transitions", params=params) or {}
        return [JiraTransition(transition) for transition in data.get('transitions', [])]

    def do_transition(self, issue_key: str, transition_id: str,
                      fields: Optional[Dict[str, Any]] = None):
        """Perform a transition on an issue"""
        payload: Dict[str, Any] = {'transition': {'id': transition_id}}
        if fields:
            payload['fields'] = fields
        self._request('POST', f"{self._issue_path(issue_key)}/transitions", json=payload)
        logger.info(f"Transitioned {issue_key} with transition {transition_id}")

    def list_boards(self, project: Optional[str] = None, max_results: int = 50) -> List[JiraBoard]:
        """List agile boards, optionally filtered by project"""
        params: Dict[str, Any] = {'maxResults': max_results}
        if project:
            params['projectKeyOrId'] = project
        data = self._request('GET', f"{self.agile_url}/board", params=params) or {}
        return [JiraBoard(board) for board in data.get('values', [])]

    def get_board(self, board_id: int) -> JiraBoard:
        return JiraBoard(self._request('GET', f"{self.agile_url}/board/{board_id}"))

    def list_sprints(self, board_id: int, state: Optional[str] = None,
                     max_results: int = 50) -> List[JiraSprint]:
        """List sprints of a board, optionally filtered by state (active, closed, future)"""
        params: Dict[str, Any] = {'maxResults': max_results}
        if state:
            params['state'] = state
        data = self._request('GET', f"{self.agile_url}/board/{board_id}/sprint", params=params) or {}
        return [JiraSprint(sprint) for sprint in data.get('values', [])]

    def get_current_sprint(self, board_id: int) -> JiraSprint:
        """Get the active sprint of a board"""
        sprints = self.list_sprints(board_id, state='active', max_results=1)
        if not sprints:
            raise NotFoundError(f"No active sprint found for board {board_id}", status_code=404)
        return sprints[0]

    def get_sprint_issues(self, sprint_id: int, max_results: int = 50) -> List[JiraIssue]:
        """Get issues in a sprint"""
        data = self._request('GET', f"{self.agile_url}/sprint/{sprint_id}/issue",
                             params={'maxResults': max_results}) or {}
        issues = []
        for issue_data in data.get('issues', []):
            issue = JiraIssue(issue_data)
            issue.set_url(self.server_url)
            issues.append(issue)
        return issues

    def move_issues_to_sprint(self, sprint_id: int, issue_keys: List[str]):
        """Move issues into a sprint"""
        keys = [self._normalize_issue_key(key) for key in issue_keys]
        self._request('POST', f"{self.agile_url}/sprint/{sprint_id}/issue", json={'issues': keys})
        logger.info(f"Moved {len(keys)} issues to sprint {sprint_id}")
