"""
Tests for the JSON transform step
"""

import pytest

from docflow.flow_engine.context import ExecutionContext
from docflow.flow_engine.steps.transform import execute_json_transform, filter_workflow_only_fields
from docflow.models.workflow import OutputField
from tests.conftest import make_step


class TestFilterWorkflowOnlyFields:
    """Field filtering"""

    def test_drops_workflow_only_and_unlisted_keys(self):
        fields = [OutputField('a'), OutputField('b', is_workflow_only=True)]
        assert filter_workflow_only_fields({'a': 1, 'b': 2, 'c': 3}, fields) == {'a': 1}

    def test_filters_nested_objects_and_arrays(self):
        fields = [
            OutputField('orders'),
            OutputField('id'),
            OutputField('internalNote', is_workflow_only=True),
        ]
        data = {'orders': [{'id': 1, 'internalNote': 'x'}, {'id': 2, 'internalNote': 'y'}]}

        assert filter_workflow_only_fields(data, fields) == {'orders': [{'id': 1}, {'id': 2}]}

    def test_unchanged_when_nothing_is_workflow_only(self):
        data = {'a': 1, 'c': 3}
        assert filter_workflow_only_fields(data, [OutputField('a')]) is data

    def test_unchanged_without_fields(self):
        data = {'a': 1}
        assert filter_workflow_only_fields(data, None) is data
        assert filter_workflow_only_fields(data, []) is data


class TestExecuteJsonTransform:
    """Step execution"""

    @pytest.mark.asyncio
    async def test_rewrites_extracted_data(self):
        context = ExecutionContext({'extractedData': {'a': 1, 'secret': 2}, 'secret': 2})
        step = make_step('json_transform', {'outputFields': [
            {'fieldName': 'a'},
            {'fieldName': 'secret', 'isWorkflowOnly': True},
        ]})

        result = await execute_json_transform(step, context)

        assert result == {'transformed': True, 'fieldCount': 1}
        assert context.extracted_data == {'a': 1}
        # Root copies stay available to later steps
        assert context.get('secret') == 2

    @pytest.mark.asyncio
    async def test_no_output_fields(self):
        context = ExecutionContext({'extractedData': {'a': 1}})
        step = make_step('json_transform', {})

        result = await execute_json_transform(step, context)

        assert result['transformed'] is False
        assert context.extracted_data == {'a': 1}
