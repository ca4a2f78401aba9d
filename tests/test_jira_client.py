"""
Tests for JIRA client functionality
"""

import pytest
import requests
from unittest.mock import Mock, patch
from jira_ticket_cli.jira_client import (
    JiraClient, JiraIssue, JiraComment, JiraTransition, JiraBoard, JiraSprint, JiraUser,
    JiraField, TEXTAREA_FIELD_TYPE, find_field, find_transition_by_name, format_field_value,
    resolve_field_id,
)
from jira_ticket_cli.errors import (
    ConfigError, JiraError, NotFoundError, AuthenticationError, ServerError,
)


def make_response(status_code=200, json_data=None):
    """Build a fake requests.Response"""
    response = Mock()
    response.status_code = status_code
    response.reason = 'OK' if status_code < 400 else 'Error'
    if json_data is None:
        response.content = b''
        response.json.side_effect = ValueError("No JSON object could be decoded")
    else:
        response.content = b'{...}'
        response.json.return_value = json_data
    return response


@pytest.fixture
def client():
    with patch('keyring.get_password', return_value='test-api-token'):
        yield JiraClient('https://test.atlassian.net', 'test@example.com')


class TestJiraIssue:
    """Test JiraIssue class"""

    def test_issue_properties(self):
        """Test basic issue property extraction"""
        issue_data = {
            'id': '10001',
            'key': 'PROJ-123',
            'fields': {
                'summary': 'Test Issue Summary',
                'description': 'Test description',
                'issuetype': {'name': 'Bug'},
                'status': {'name': 'In Progress'},
                'priority': {'name': 'High'},
                'assignee': {'displayName': 'John Doe', 'name': 'john.doe'},
                'reporter': {'displayName': 'Jane Roe'},
                'project': {'key': 'PROJ'},
                'labels': ['backend', 'urgent'],
            }
        }

        issue = JiraIssue(issue_data)

        assert issue.id == '10001'
        assert issue.key == 'PROJ-123'
        assert issue.summary == 'Test Issue Summary'
        assert issue.description.to_plain_text() == 'Test description'
        assert issue.issue_type == 'Bug'
        assert issue.status == 'In Progress'
        assert issue.priority == 'High'
        assert issue.assignee == 'John Doe'
        assert issue.reporter == 'Jane Roe'
        assert issue.project_key == 'PROJ'
        assert issue.labels == ['backend', 'urgent']

    def test_issue_missing_fields(self):
        """Test issue with missing optional fields"""
        issue_data = {
            'key': 'PROJ-456',
            'fields': {
                'summary': 'Minimal Issue',
                'issuetype': {'name': 'Task'},
                'status': {'name': 'Open'},
                'assignee': None,
                'priority': None,
            }
        }

        issue = JiraIssue(issue_data)

        assert issue.key == 'PROJ-456'
        assert issue.description.to_plain_text() == ''
        assert issue.description.adf is None
        assert issue.assignee is None
        assert issue.priority == ''
        assert issue.labels == []

    def test_issue_adf_description(self):
        """Test issue with ADF (Atlassian Document Format) description"""
        adf_description = {
            "version": 1,
            "type": "doc",
            "content": [
                {
                    "type": "paragraph",
                    "content": [
                        {"type": "text", "text": "This is a paragraph with "},
                        {"type": "text", "text": "bold text", "marks": [{"type": "strong"}]},
                        {"type": "text", "text": " and normal text."}
                    ]
                },
                {
                    "type": "paragraph",
                    "content": [{"type": "text", "text": "Second paragraph."}]
                }
            ]
        }

        issue = JiraIssue({'key': 'PROJ-789', 'fields': {'description': adf_description}})

        expected_text = "This is a paragraph with bold text and normal text.\nSecond paragraph.\n"
        assert issue.description.to_plain_text() == expected_text
        assert issue.description.to_json() == adf_description

    def test_issue_url_setting(self):
        """Test setting issue URL"""
        issue = JiraIssue({'key': 'PROJ-789', 'fields': {}})

        issue.set_url('https://test.atlassian.net/')
        assert issue.url == 'https://test.atlassian.net/browse/PROJ-789'


class TestResources:
    """Test the other API object wrappers"""

    def test_user(self):
        """Test user properties"""
        user = JiraUser({'accountId': 'abc123', 'displayName': 'Test User',
                         'emailAddress': 'test@example.com', 'active': True})

        assert user.account_id == 'abc123'
        assert user.display_name == 'Test User'
        assert user.email == 'test@example.com'
        assert user.active is True

    def test_comment_with_string_body(self):
        """Test comments from APIs that return plain strings"""
        comment = JiraComment({'id': 10, 'author': {'displayName': 'Ann'}, 'body': 'Looks good'})

        assert comment.id == '10'
        assert comment.author == 'Ann'
        assert comment.body.to_plain_text() == 'Looks good'

    def test_comment_with_adf_body(self):
        """Test comments with ADF bodies"""
        body = {"type": "doc", "version": 1,
                "content": [{"type": "paragraph", "content": [{"type": "text", "text": "Done"}]}]}
        comment = JiraComment({'id': '11', 'body': body})

        assert comment.body.to_plain_text() == 'Done\n'

    def test_transition(self):
        """Test transition properties"""
        transition = JiraTransition({
            'id': '31',
            'name': 'Done',
            'to': {'name': 'Closed'},
            'fields': {
                'resolution': {'required': True},
                'comment': {'required': False},
            }
        })

        assert transition.id == '31'
        assert transition.to_status == 'Closed'
        assert transition.required_fields == ['resolution']

    def test_board_and_sprint(self):
        """Test agile objects"""
        board = JiraBoard({'id': 7, 'name': 'Team board', 'type': 'scrum',
                           'location': {'projectKey': 'PROJ'}})
        sprint = JiraSprint({'id': 3, 'name': 'Sprint 3', 'state': 'active',
                             'startDate': '2024-01-01T00:00:00.000Z'})

        assert board.project_key == 'PROJ'
        assert board.type == 'scrum'
        assert sprint.state == 'active'
        assert sprint.end_date == ''

    def test_find_transition_by_name(self):
        """Test transition lookup by name or ID"""
        transitions = [JiraTransition({'id': '11', 'name': 'To Do'}),
                       JiraTransition({'id': '21', 'name': 'In Progress'})]

        assert find_transition_by_name(transitions, 'in progress').id == '21'
        assert find_transition_by_name(transitions, '11').name == 'To Do'
        assert find_transition_by_name(transitions, 'Done') is None


class TestJiraClient:
    """Test JiraClient class"""

    @patch('keyring.get_password')
    def test_client_initialization_success(self, mock_get_password):
        """Test successful client initialization"""
        mock_get_password.return_value = 'test-api-token'

        client = JiraClient('test.atlassian.net/', 'test@example.com')

        assert client.server_url == 'https://test.atlassian.net'
        assert client.api_url == 'https://test.atlassian.net/rest/api/3'
        assert client.agile_url == 'https://test.atlassian.net/rest/agile/1.0'
        assert client.session.auth == ('test@example.com', 'test-api-token')
        mock_get_password.assert_called_once_with("jira-ticket-cli", "test@example.com")

    @patch('keyring.get_password')
    def test_client_initialization_explicit_token(self, mock_get_password):
        """Test that an explicit token skips the keyring"""
        client = JiraClient('https://test.atlassian.net', 'test@example.com', api_token='env-token')

        assert client.session.auth == ('test@example.com', 'env-token')
        mock_get_password.assert_not_called()

    @patch('keyring.get_password')
    def test_client_initialization_no_token(self, mock_get_password):
        """Test client initialization without API token"""
        mock_get_password.return_value = None

        with pytest.raises(ConfigError, match="JIRA API token not found"):
            JiraClient('https://test.atlassian.net', 'test@example.com')

    def test_client_initialization_no_url(self):
        """Test client initialization without a server URL"""
        with pytest.raises(ConfigError, match="Jira URL is required"):
            JiraClient('', 'test@example.com', api_token='token')

    @patch('keyring.set_password')
    def test_store_api_token_success(self, mock_set_password):
        """Test API token storage"""
        JiraClient.store_api_token('test@example.com', 'test-token')
        mock_set_password.assert_called_once_with("jira-ticket-cli", "test@example.com", "test-token")

    @patch('keyring.set_password')
    def test_store_api_token_failure(self, mock_set_password):
        """Test API token storage failure"""
        mock_set_password.side_effect = Exception("Keyring error")

        with pytest.raises(Exception, match="Keyring error"):
            JiraClient.store_api_token('test@example.com', 'test-token')

    @patch('keyring.delete_password')
    def test_delete_api_token_missing(self, mock_delete_password):
        """Test removing a token that was never stored"""
        from keyring.errors import PasswordDeleteError
        mock_delete_password.side_effect = PasswordDeleteError("not found")

        JiraClient.delete_api_token('test@example.com')
        mock_delete_password.assert_called_once_with("jira-ticket-cli", "test@example.com")

    def test_connection_test_success(self, client):
        """Test successful connection test"""
        with patch.object(requests.Session, 'request') as mock_request:
            mock_request.return_value = make_response(200, {'accountId': 'abc'})

            assert client.test_connection() is True
            args, kwargs = mock_request.call_args
            assert args[0] == 'GET'
            assert args[1].endswith('/rest/api/3/myself')
            assert kwargs['timeout'] == 30

    def test_connection_test_failure(self, client):
        """Test connection test failure"""
        with patch.object(requests.Session, 'request') as mock_request:
            mock_request.side_effect = requests.exceptions.RequestException("Connection failed")

            assert client.test_connection() is False

    def test_request_failure_raises(self, client):
        """Test that transport errors become JiraError"""
        with patch.object(requests.Session, 'request') as mock_request:
            mock_request.side_effect = requests.exceptions.ConnectionError("refused")

            with pytest.raises(JiraError, match="Request failed"):
                client.get_myself()

    def test_error_response_mapping(self, client):
        """Test that HTTP errors map onto typed errors"""
        with patch.object(requests.Session, 'request') as mock_request:
            mock_request.return_value = make_response(401)
            with pytest.raises(AuthenticationError):
                client.get_myself()

            mock_request.return_value = make_response(502)
            with pytest.raises(ServerError) as exc_info:
                client.get_myself()
            assert exc_info.value.status_code == 502

    def test_search_my_issues_success(self, client):
        """Test successful issue search"""
        mock_response_data = {
            'issues': [
                {'key': 'PROJ-123', 'fields': {'summary': 'Test Issue 1', 'status': {'name': 'Open'}}},
                {'key': 'PROJ-456', 'fields': {'summary': 'Test Issue 2', 'status': {'name': 'In Progress'}}},
            ]
        }

        with patch.object(requests.Session, 'request') as mock_request:
            mock_request.return_value = make_response(200, mock_response_data)

            issues = client.search_my_issues(limit=10)

            assert len(issues) == 2
            assert issues[0].key == 'PROJ-123'
            assert issues[1].summary == 'Test Issue 2'
            assert issues[0].url == 'https://test.atlassian.net/browse/PROJ-123'

            # Verify the API v3 endpoint is used
            args, kwargs = mock_request.call_args
            assert args[1].endswith('/rest/api/3/search/jql')
            assert 'currentUser()' in kwargs['params']['jql']
            assert kwargs['params']['maxResults'] == 10

    def test_get_issue_success(self, client):
        """Test successful individual issue fetch"""
        mock_response_data = {
            'key': 'PROJ-123',
            'fields': {
                'summary': 'Individual Issue',
                'issuetype': {'name': 'Story'},
                'status': {'name': 'Done'},
            }
        }

        with patch.object(requests.Session, 'request') as mock_request:
            mock_request.return_value = make_response(200, mock_response_data)

            issue = client.get_issue('PROJ-123')

            assert issue.key == 'PROJ-123'
            assert issue.status == 'Done'
            args, kwargs = mock_request.call_args
            assert args[1].endswith('/rest/api/3/issue/PROJ-123')

    def test_get_issue_not_found(self, client):
        """Test issue not found error"""
        with patch.object(requests.Session, 'request') as mock_request:
            mock_request.return_value = make_response(404, {'errorMessages': ['Issue does not exist']})

            with pytest.raises(NotFoundError, match="JIRA issue not found: PROJ-999") as exc_info:
                client.get_issue('PROJ-999')
            assert exc_info.value.exit_code == 5

    def test_get_issue_invalid_key_format(self, client):
        """Test invalid issue key format"""
        with patch.object(requests.Session, 'request') as mock_request:
            for invalid_key in ['invalid', '123', 'PROJ', 'PROJ-']:
                with pytest.raises(JiraError, match="Invalid JIRA issue key format"):
                    client.get_issue(invalid_key)

            mock_request.assert_not_called()

    def test_get_issue_key_normalization(self, client):
        """Test issue key normalization"""
        with patch.object(requests.Session, 'request') as mock_request:
            mock_request.return_value = make_response(200, {'key': 'PROJ-123', 'fields': {}})

            client.get_issue(' proj-123 ')

            args, kwargs = mock_request.call_args
            assert args[1].endswith('/rest/api/3/issue/PROJ-123')

    def test_create_issue_converts_description(self, client):
        """Test that Markdown descriptions are sent as ADF"""
        with patch.object(requests.Session, 'request') as mock_request:
            mock_request.return_value = make_response(201, {'id': '10000', 'key': 'PROJ-1'})

            issue = client.create_issue('PROJ', 'Bug', 'Broken login',
                                        description='## Steps\n\n1. Open page',
                                        fields={'labels': ['web']})

            assert issue.key == 'PROJ-1'
            args, kwargs = mock_request.call_args
            assert args[0] == 'POST'
            fields = kwargs['json']['fields']
            assert fields['project'] == {'key': 'PROJ'}
            assert fields['issuetype'] == {'name': 'Bug'}
            assert fields['labels'] == ['web']
            description = fields['description']
            assert description['type'] == 'doc'
            assert description['content'][0] == {
                'type': 'heading', 'attrs': {'level': 2},
                'content': [{'type': 'text', 'text': 'Steps'}],
            }
            assert description['content'][1]['type'] == 'orderedList'

    def test_create_issue_wiki_description(self, client):
        """Test that wiki markup descriptions are converted too"""
        with patch.object(requests.Session, 'request') as mock_request:
            mock_request.return_value = make_response(201, {'id': '10000', 'key': 'PROJ-2'})

            client.create_issue('PROJ', 'Task', 'Docs', description='h1. Overview')

            description = mock_request.call_args[1]['json']['fields']['description']
            assert description['content'][0]['type'] == 'heading'
            assert description['content'][0]['attrs'] == {'level': 1}

    def test_create_issue_requires_summary(self, client):
        """Test create validation"""
        with pytest.raises(JiraError, match="Summary is required"):
            client.create_issue('PROJ', 'Task', '')

    def test_update_issue(self, client):
        """Test issue update with empty response"""
        with patch.object(requests.Session, 'request') as mock_request:
            mock_request.return_value = make_response(204)

            assert client.update_issue('PROJ-1', summary='New title') is None

            args, kwargs = mock_request.call_args
            assert args[0] == 'PUT'
            assert kwargs['json'] == {'fields': {'summary': 'New title'}}

    def test_update_issue_nothing_to_update(self, client):
        """Test update without fields"""
        with pytest.raises(JiraError, match="No fields to update"):
            client.update_issue('PROJ-1')

    def test_assign_and_unassign(self, client):
        """Test assignee updates"""
        with patch.object(requests.Session, 'request') as mock_request:
            mock_request.return_value = make_response(204)

            client.assign_issue('PROJ-1', 'abc123')
            assert mock_request.call_args[1]['json'] == {'accountId': 'abc123'}

            client.assign_issue('PROJ-1', None)
            args, kwargs = mock_request.call_args
            assert args[1].endswith('/issue/PROJ-1/assignee')
            assert kwargs['json'] == {'accountId': None}

    def test_add_comment(self, client):
        """Test that comment bodies are sent as ADF"""
        with patch.object(requests.Session, 'request') as mock_request:
            mock_request.return_value = make_response(201, {'id': '500', 'body': 'ignored'})

            comment = client.add_comment('PROJ-1', 'Fixed in **v2**')

            assert comment.id == '500'
            body = mock_request.call_args[1]['json']['body']
            assert body['type'] == 'doc'
            assert {'type': 'text', 'text': 'v2', 'marks': [{'type': 'strong'}]} in body['content'][0]['content']

    def test_add_comment_requires_body(self, client):
        """Test comment validation"""
        with pytest.raises(JiraError, match="Comment body is required"):
            client.add_comment('PROJ-1', '')

    def test_get_comments(self, client):
        """Test listing comments"""
        with patch.object(requests.Session, 'request') as mock_request:
            mock_request.return_value = make_response(200, {'comments': [{'id': '1', 'body': 'first'}]})

            comments = client.get_comments('PROJ-1')

            assert [c.body.to_plain_text() for c in comments] == ['first']

    def test_transitions(self, client):
        """Test listing and performing transitions"""
        with patch.object(requests.Session, 'request') as mock_request:
            mock_request.return_value = make_response(200, {
                'transitions': [{'id': '31', 'name': 'Done', 'to': {'name': 'Done'}}]
            })
            transitions = client.get_transitions('PROJ-1')
            assert transitions[0].id == '31'

            mock_request.return_value = make_response(204)
            client.do_transition('PROJ-1', '31', fields={'resolution': {'name': 'Fixed'}})

            args, kwargs = mock_request.call_args
            assert args[0] == 'POST'
            assert kwargs['json'] == {
                'transition': {'id': '31'},
                'fields': {'resolution': {'name': 'Fixed'}},
            }

    def test_current_sprint(self, client):
        """Test active sprint lookup"""
        with patch.object(requests.Session, 'request') as mock_request:
            mock_request.return_value = make_response(200, {'values': [{'id': 9, 'name': 'Sprint 9'}]})

            sprint = client.get_current_sprint(4)

            assert sprint.id == 9
            args, kwargs = mock_request.call_args
            assert args[1] == 'https://test.atlassian.net/rest/agile/1.0/board/4/sprint'
            assert kwargs['params']['state'] == 'active'

    def test_no_current_sprint(self, client):
        """Test board without an active sprint"""
        with patch.object(requests.Session, 'request') as mock_request:
            mock_request.return_value = make_response(200, {'values': []})

            with pytest.raises(NotFoundError, match="No active sprint found for board 4"):
                client.get_current_sprint(4)

    def test_sprint_issues_with_string_descriptions(self, client):
        """Test that Agile API string descriptions are accepted"""
        with patch.object(requests.Session, 'request') as mock_request:
            mock_request.return_value = make_response(200, {
                'issues': [{'key': 'PROJ-5', 'fields': {'description': 'plain *text*'}}]
            })

            issues = client.get_sprint_issues(9)

            assert issues[0].description.to_plain_text() == 'plain *text*'

    def test_move_issues_to_sprint(self, client):
        """Test moving issues into a sprint"""
        with patch.object(requests.Session, 'request') as mock_request:
            mock_request.return_value = make_response(204)

            client.move_issues_to_sprint(9, ['proj-1', 'PROJ-2'])

            assert mock_request.call_args[1]['json'] == {'issues': ['PROJ-1', 'PROJ-2']}


FIELD_DEFINITIONS = [
    {'id': 'priority', 'name': 'Priority', 'custom': False, 'schema': {'type': 'priority'}},
    {'id': 'labels', 'name': 'Labels', 'custom': False, 'schema': {'type': 'array', 'items': 'string'}},
    {'id': 'customfield_10050', 'name': 'Resolution Note', 'custom': True,
     'schema': {'type': 'string', 'custom': TEXTAREA_FIELD_TYPE}},
    {'id': 'customfield_10060', 'name': 'Severity', 'custom': True, 'schema': {'type': 'option'}},
    {'id': 'customfield_10070', 'name': 'Platforms', 'custom': True,
     'schema': {'type': 'array', 'items': 'option'}},
    {'id': 'customfield_10080', 'name': 'Reviewer', 'custom': True, 'schema': {'type': 'user'}},
    {'id': 'customfield_10090', 'name': 'Story Points', 'custom': True, 'schema': {'type': 'number'}},
]


def field_named(name):
    return find_field([JiraField(data) for data in FIELD_DEFINITIONS], name)


class TestFieldHandling:
    """Test field lookup and value formatting"""

    def test_find_by_id(self):
        """Test that an exact ID matches"""
        assert field_named('customfield_10050').name == 'Resolution Note'

    def test_find_by_name_ignores_case(self):
        """Test that names match case-insensitively"""
        assert field_named('resolution note').id == 'customfield_10050'
        assert field_named('unknown') is None

    def test_resolve_field_id(self):
        """Test name to ID resolution"""
        fields = [JiraField(data) for data in FIELD_DEFINITIONS]

        assert resolve_field_id(fields, 'Story Points') == 'customfield_10090'
        with pytest.raises(JiraError, match="Field not found: Sprint"):
            resolve_field_id(fields, 'Sprint')

    def test_textarea_value_is_adf(self):
        """Test that multi-line text fields get a converted document"""
        value = format_field_value(field_named('Resolution Note'), 'some *text*')

        assert value['type'] == 'doc'
        assert value['version'] == 1
        paragraph = value['content'][0]
        assert paragraph['type'] == 'paragraph'
        assert {'type': 'text', 'text': 'text', 'marks': [{'type': 'em'}]} in paragraph['content']

    def test_textarea_wiki_value(self):
        """Test that wiki markup in a text field is transcoded"""
        value = format_field_value(field_named('Resolution Note'), 'h2. Cause')

        assert value['content'][0]['type'] == 'heading'
        assert value['content'][0]['attrs'] == {'level': 2}

    def test_typed_values(self):
        """Test option, array, user and number shapes"""
        assert format_field_value(field_named('Severity'), 'High') == {'value': 'High'}
        assert format_field_value(field_named('Platforms'), 'iOS') == [{'value': 'iOS'}]
        assert format_field_value(field_named('Labels'), 'backend') == ['backend']
        assert format_field_value(field_named('Reviewer'), 'abc123') == {'accountId': 'abc123'}
        assert format_field_value(field_named('Story Points'), '3') == 3.0
        assert format_field_value(field_named('Story Points'), 'lots') == 'lots'

    def test_untyped_values_unchanged(self):
        """Test that other and unknown fields keep the raw string"""
        assert format_field_value(field_named('Priority'), 'High') == 'High'
        assert format_field_value(None, 'some *text*') == 'some *text*'

    def test_get_fields(self, client):
        """Test the field definitions request"""
        with patch.object(requests.Session, 'request') as mock_request:
            mock_request.return_value = make_response(200, FIELD_DEFINITIONS)

            fields = client.get_fields()

            args, _ = mock_request.call_args
            assert args[0] == 'GET'
            assert args[1].endswith('/field')
            assert [field.id for field in fields][:2] == ['priority', 'labels']
            assert fields[2].custom is True

    def test_resolve_fields(self, client):
        """Test that names become IDs and values take their field's shape"""
        with patch.object(requests.Session, 'request') as mock_request:
            mock_request.return_value = make_response(200, FIELD_DEFINITIONS)

            resolved = client.resolve_fields({
                'Resolution note': 'some *text*',
                'Severity': 'High',
                'customfield_99999': 'raw',
            })

            assert set(resolved) == {'customfield_10050', 'customfield_10060', 'customfield_99999'}
            assert resolved['customfield_10050']['type'] == 'doc'
            assert resolved['customfield_10060'] == {'value': 'High'}
            assert resolved['customfield_99999'] == 'raw'

    def test_update_issue_sends_resolved_fields(self, client):
        """Test that resolved values reach the update request untouched"""
        with patch.object(requests.Session, 'request') as mock_request:
            mock_request.side_effect = [make_response(200, FIELD_DEFINITIONS), make_response(204)]

            fields = client.resolve_fields({'Resolution Note': 'Fixed in **2.1**'})
            client.update_issue('PROJ-1', fields=fields)

            body = mock_request.call_args[1]['json']
            note = body['fields']['customfield_10050']
            assert note['type'] == 'doc'
            assert note['content'][0]['content'][-1]['marks'] == [{'type': 'strong'}]
