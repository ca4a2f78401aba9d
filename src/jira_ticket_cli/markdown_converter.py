"""
Markdown to ADF converter for jira-ticket-cli

Parses Markdown with mistune's AST renderer and walks the token tree,
mapping each token type onto an ADF node. Inline styling is nested in
Markdown but flat in ADF, so marks are accumulated on the way down and
attached to the leaf text nodes.
"""

from typing import Any, Callable, Dict, List, Optional

import mistune

from .adf import (
    BLOCKQUOTE, BULLET_LIST, CODE, CODE_BLOCK, EM, HARD_BREAK, HEADING, LINK,
    LIST_ITEM, ORDERED_LIST, PARAGRAPH, RULE, STRIKE, STRONG, TABLE,
    TABLE_CELL, TABLE_HEADER, TABLE_ROW, TEXT, Document, Mark, Node,
)
from .wiki_converter import is_wiki_markup, wiki_to_markdown

Token = Dict[str, Any]

_markdown = mistune.create_markdown(renderer='ast', plugins=['table', 'strikethrough'])

# Block nodes an ADF blockquote may hold
_BLOCKQUOTE_CHILDREN = (PARAGRAPH, BULLET_LIST, ORDERED_LIST, CODE_BLOCK)


def markdown_to_adf(markdown: Optional[str]) -> Optional[Document]:
    """
    Convert Markdown text to an ADF document

    Supports headings, paragraphs, bold, italic, strikethrough, inline code,
    code blocks, bullet and numbered lists (nested), links, images (as
    links), blockquotes, horizontal rules and tables.

    Args:
        markdown: Markdown source text

    Returns:
        ADF document, or None for empty input
    """
    if not markdown:
        return None

    content = _convert_blocks(_markdown(markdown))

    # Never lose the author's text, even if nothing could be parsed
    if not content:
        content = [Node(PARAGRAPH, content=(Node(TEXT, text=markdown),))]

    return Document(content=tuple(content))


def text_to_adf(text: Optional[str]) -> Optional[Document]:
    """
    Convert user-supplied text (Markdown or JIRA wiki markup) to ADF

    Args:
        text: Raw text from the command line or a file

    Returns:
        ADF document, or None for empty input
    """
    if is_wiki_markup(text):
        text = wiki_to_markdown(text)
    return markdown_to_adf(text)


def _convert_blocks(tokens: List[Token]) -> List[Node]:
    nodes = []
    for token in tokens:
        converter = _BLOCK_CONVERTERS.get(token['type'])
        if converter is not None:
            node = converter(token)
            if node is not None:
                nodes.append(node)
        elif 'children' in token:
            nodes.extend(_convert_blocks(token['children']))
    return nodes


def _convert_heading(token: Token) -> Node:
    return Node(
        HEADING,
        attrs={'level': token['attrs']['level']},
        content=tuple(_convert_inlines(token.get('children', []))),
    )


def _convert_paragraph(token: Token) -> Optional[Node]:
    content = _convert_inlines(token.get('children', []))
    if not content:
        return None
    return Node(PARAGRAPH, content=tuple(content))


def _convert_code_block(token: Token) -> Node:
    code = token.get('raw', '')
    if code.endswith('\n'):
        code = code[:-1]

    attrs = None
    info = (token.get('attrs') or {}).get('info') or ''
    if info.split():
        attrs = {'language': info.split()[0]}

    content = (Node(TEXT, text=code),) if code else ()
    return Node(CODE_BLOCK, content=content, attrs=attrs)


def _convert_list(token: Token) -> Node:
    ordered = (token.get('attrs') or {}).get('ordered', False)
    items = [
        _convert_list_item(child)
        for child in token.get('children', [])
        if child['type'] == 'list_item'
    ]
    return Node(ORDERED_LIST if ordered else BULLET_LIST, content=tuple(items))


def _convert_list_item(token: Token) -> Node:
    """
    A list item holds its text as a paragraph, followed by any nested
    lists (or other blocks) as further children
    """
    content = []
    for child in token.get('children', []):
        if child['type'] in ('block_text', 'paragraph'):
            node = _convert_paragraph(child)
        else:
            converter = _BLOCK_CONVERTERS.get(child['type'])
            node = converter(child) if converter is not None else None
        if node is not None:
            content.append(node)
    return Node(LIST_ITEM, content=tuple(content))


def _convert_blockquote(token: Token) -> Node:
    content = []
    for node in _convert_blocks(token.get('children', [])):
        if node.type == HEADING:
            if not node.content:
                continue
            node = Node(PARAGRAPH, content=node.content)
        if node.type == BLOCKQUOTE:
            content.extend(node.content)
        elif node.type in _BLOCKQUOTE_CHILDREN:
            content.append(node)
    return Node(BLOCKQUOTE, content=tuple(content))


def _convert_rule(token: Token) -> Node:
    return Node(RULE)


def _convert_table(token: Token) -> Node:
    rows = []
    for section in token.get('children', []):
        if section['type'] == 'table_head':
            # The header section holds its cells directly
            rows.append(_convert_table_row(section, TABLE_HEADER))
        elif section['type'] == 'table_body':
            for row in section.get('children', []):
                rows.append(_convert_table_row(row, TABLE_CELL))
    return Node(TABLE, content=tuple(rows))


def _convert_table_row(token: Token, cell_type: str) -> Node:
    cells = []
    for cell in token.get('children', []):
        if cell['type'] != 'table_cell':
            continue
        inline = _convert_inlines(cell.get('children', []))
        # ADF table cells need paragraph wrappers
        content = (Node(PARAGRAPH, content=tuple(inline)),) if inline else ()
        cells.append(Node(cell_type, content=content))
    return Node(TABLE_ROW, content=tuple(cells))


_BLOCK_CONVERTERS: Dict[str, Callable[[Token], Optional[Node]]] = {
    'heading': _convert_heading,
    'paragraph': _convert_paragraph,
    'block_text': _convert_paragraph,
    'block_code': _convert_code_block,
    'list': _convert_list,
    'block_quote': _convert_blockquote,
    'thematic_break': _convert_rule,
    'table': _convert_table,
    'blank_line': lambda token: None,
    'block_html': lambda token: None,
}


def _convert_inlines(tokens: List[Token]) -> List[Node]:
    nodes = []
    for token in tokens:
        nodes.extend(_convert_inline(token))
    return nodes


def _convert_inline(token: Token) -> List[Node]:
    token_type = token['type']

    if token_type == 'text':
        text = token.get('raw', '')
        return [Node(TEXT, text=text)] if text else []

    if token_type == 'softbreak':
        return [Node(TEXT, text=' ')]

    if token_type == 'linebreak':
        return [Node(HARD_BREAK)]

    if token_type in _MARK_TOKENS:
        content = _convert_inlines(token.get('children', []))
        return _apply_mark(content, Mark(_MARK_TOKENS[token_type]))

    if token_type == 'codespan':
        code = token.get('raw', '')
        return [Node(TEXT, text=code, marks=(Mark(CODE),))] if code else []

    if token_type == 'link':
        content = _convert_inlines(token.get('children', []))
        return _apply_mark(content, Mark(LINK, {'href': token['attrs']['url']}))

    if token_type == 'image':
        # Images become links to their source
        attrs = token.get('attrs') or {}
        url = attrs.get('url', '')
        text = attrs.get('title') or _plain_text(token.get('children', [])) or url
        if not text:
            return []
        return [Node(TEXT, text=text, marks=(Mark(LINK, {'href': url}),))]

    if token_type == 'inline_html':
        return []

    # Unknown inline token: keep whatever text it wraps
    return _convert_inlines(token.get('children', []))


_MARK_TOKENS = {
    'emphasis': EM,
    'strong': STRONG,
    'strikethrough': STRIKE,
}


def _apply_mark(nodes: List[Node], mark: Mark) -> List[Node]:
    """
    Add ``mark`` to every text node; marks compose when emphasis nests

    A node already carrying a mark of the same type keeps it, so the
    innermost link wins for a linked image.
    """
    return [
        node.with_mark(mark)
        if node.type == TEXT and not _has_mark(node, mark.type) else node
        for node in nodes
    ]


def _has_mark(node: Node, mark_type: str) -> bool:
    return any(existing.type == mark_type for existing in node.marks or ())


def _plain_text(tokens: List[Token]) -> str:
    parts = []
    for token in tokens:
        if token['type'] in ('text', 'codespan'):
            parts.append(token.get('raw', ''))
        elif token['type'] == 'softbreak':
            parts.append(' ')
        elif 'children' in token:
            parts.append(_plain_text(token['children']))
    return ''.join(parts)
