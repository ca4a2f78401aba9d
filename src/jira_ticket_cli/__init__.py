"""
jira-ticket-cli: manage Jira tickets from the command line
"""

__version__ = "0.1.0"

from .adf import Description, Document, Mark, Node, to_plain_text
from .markdown_converter import markdown_to_adf, text_to_adf
from .wiki_converter import is_wiki_markup, wiki_to_markdown
