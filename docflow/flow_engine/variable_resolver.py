"""
Variable Resolver - Resolves {{path}} placeholders against the execution context

Supports:
- {{field}} / {{nested.field}} / {{items[0].name}} / {{items.0.name}}
- {{extractedData.field}} (prefix stripped, extracted fields live at the root)
- ${field} and {field} in path-variable and query-parameter templates
- {{extractedData}} / {{orders}} whole-value placeholders in JSON bodies

Unresolved placeholders are left untouched so a single missing value never
corrupts the rest of the template.
"""

import json
import logging
import re
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote

from docflow.flow_engine.context import ExecutionContext, resolve_path

logger = logging.getLogger(__name__)

# Characters encodeURIComponent leaves alone
URI_COMPONENT_SAFE = "-_.!~*'()"


def stringify(value: Any) -> str:
    """String form used when a value is spliced into text."""
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def encode_uri_component(value: str) -> str:
    return quote(value, safe=URI_COMPONENT_SAFE)


def escape_odata(value: Any) -> Any:
    """
    Escape a value for an OData string literal.

    Single quotes are doubled and parentheses removed (the upstream WAF
    rejects requests containing "()" patterns).

        "O'Brien (Ltd)" -> "O''Brien Ltd"
    """
    if not isinstance(value, str):
        return value
    return value.replace("'", "''").replace('(', '').replace(')', '')


def escape_json_string(value: str) -> str:
    """Escape text for insertion inside a JSON string literal."""
    return (
        value.replace('\\', '\\\\')
        .replace('"', '\\"')
        .replace('\n', '\\n')
        .replace('\r', '\\r')
        .replace('\t', '\\t')
    )


class VariableResolver:
    """
    Resolves placeholder references in step configuration.

    Examples:
        {{invoiceNumber}}              -> "INV-42"
        {{orders[0].consignee.name}}   -> "ACME"
        {{response.items}}             -> '[{"id": 1}]'  (JSON text)
    """

    VARIABLE_PATTERN = re.compile(r'\{\{([^}]+)\}\}')
    # {{name}} or ${name}, used by query-parameter and path-variable values
    TEMPLATE_VARIABLE_PATTERN = re.compile(r'\{\{([^}]+)\}\}|\$\{([^}]+)\}')
    # {name} or ${name}, used by API paths and user response templates
    PATH_VARIABLE_PATTERN = re.compile(r'\$\{([^{}]+)\}|\{([^{}]+)\}')

    WHOLE_VALUE_PLACEHOLDERS = ('extractedData', 'orders')

    def __init__(self, context: ExecutionContext, fallback: Optional[Any] = None):
        """
        Args:
            context: Execution context of the current run
            fallback: Secondary source consulted when a path is missing from
                the context (the rename step passes the last API response)
        """
        self.context = context
        self.fallback = fallback

    def lookup(self, path: str) -> Any:
        value = resolve_path(self.context.data, path.strip())
        if value is None and self.fallback is not None:
            value = resolve_path(self.fallback, path.strip())
        return value

    def substitute(
        self,
        template: Optional[str],
        transform: Optional[Callable[[str], str]] = None,
        keep_unresolved: bool = True,
    ) -> Optional[str]:
        """
        Replace every {{path}} token in template.

        Args:
            template: Text containing placeholders
            transform: Applied to each resolved value's string form
                (URL encoding, JSON escaping)
            keep_unresolved: Leave unknown tokens as-is; when False they are
                replaced by an empty string

        Returns:
            The substituted text (None passes through)
        """
        if not template or '{{' not in template:
            return template

        def replace_var(match):
            path = match.group(1).strip()
            value = self.lookup(path)
            if value is None:
                logger.warning(f"Unresolved placeholder: {match.group(0)}")
                return match.group(0) if keep_unresolved else ''
            text = stringify(value)
            return transform(text) if transform else text

        return self.VARIABLE_PATTERN.sub(replace_var, template)

    def substitute_url(self, template: str, odata_escape: bool = False) -> str:
        """Resolve URL placeholders, percent-encoding each value."""
        def encode(text: str) -> str:
            if odata_escape:
                text = escape_odata(text)
            return encode_uri_component(text)

        return self.substitute(template, transform=encode, keep_unresolved=False) or ''

    def substitute_json_body(self, template: str, odata_escape: bool = False) -> str:
        """
        Resolve placeholders inside a JSON body template.

        Scalar values are JSON-string escaped. {{extractedData}} and {{orders}}
        are replaced by raw JSON so the body stays valid JSON.
        """
        if not template:
            return template or ''

        def replace_var(match):
            path = match.group(1).strip()
            if path in self.WHOLE_VALUE_PLACEHOLDERS:
                return match.group(0)
            value = self.lookup(path)
            if value is None:
                logger.warning(f"Unresolved body placeholder: {match.group(0)}")
                return ''
            text = stringify(value)
            if odata_escape:
                text = escape_odata(text)
            return escape_json_string(text)

        body = self.VARIABLE_PATTERN.sub(replace_var, template)
        return self._inject_whole_values(body)

    def _inject_whole_values(self, body: str) -> str:
        if '{{extractedData}}' in body:
            extracted = self.context.data.get('extractedData')
            original = self.context.data.get('originalExtractedData')
            if isinstance(extracted, (dict, list)):
                body = body.replace('{{extractedData}}', json.dumps(extracted))
            elif isinstance(original, str):
                logger.warning("Using original extracted data string for {{extractedData}}")
                body = body.replace('{{extractedData}}', original)

        if '{{orders}}' in body:
            orders = self.context.data.get('orders')
            if isinstance(orders, list):
                body = body.replace('{{orders}}', json.dumps(orders))

        return body

    def substitute_template_values(
        self,
        template: str,
        transform: Optional[Callable[[str], str]] = None,
    ) -> str:
        """Resolve {{name}} and ${name} tokens; unknown tokens stay unchanged."""
        def replace_var(match):
            path = (match.group(1) or match.group(2)).strip()
            value = self.lookup(path)
            if value is None:
                logger.warning(f"Variable {match.group(0)} not found in context, leaving unchanged")
                return match.group(0)
            text = stringify(value)
            return transform(text) if transform else text

        return self.TEMPLATE_VARIABLE_PATTERN.sub(replace_var, template)

    def substitute_path_variables(self, template: str) -> str:
        """Resolve {name} and ${name} tokens; unknown tokens stay unchanged."""
        def replace_var(match):
            path = (match.group(1) or match.group(2)).strip()
            value = self.lookup(path)
            if value is None:
                return match.group(0)
            return stringify(value)

        return self.PATH_VARIABLE_PATTERN.sub(replace_var, template)

    def resolve_user_response(self, template: Optional[str]) -> Optional[str]:
        """Resolve a step's user response template ({path} syntax)."""
        if not template:
            return None
        return self.substitute_path_variables(template)

    def tracked_substitute(self, template: Optional[str], mappings: Dict[str, Any]) -> Optional[str]:
        """Substitute and record every path -> value used (for step output)."""
        if template:
            for match in self.VARIABLE_PATTERN.finditer(template):
                path = match.group(1).strip()
                mappings[path] = self.lookup(path)
        return self.substitute(template)
