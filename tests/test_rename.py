"""
Tests for the rename step
"""

from datetime import datetime

import pytest

from docflow.flow_engine.context import ExecutionContext
from docflow.flow_engine.steps.rename import build_base_filename, execute_rename, format_timestamp
from docflow.models.workflow import RenameConfig
from tests.conftest import FIXED_NOW, make_step


class TestBuildBaseFilename:
    """Template selection and resolution"""

    def test_step_template_wins(self):
        context = ExecutionContext({'invoiceNumber': 'INV-1', 'extractionTypeFilename': 'Type_{{invoiceNumber}}'})
        config = RenameConfig.from_dict({'filenameTemplate': 'Bill_{{invoiceNumber}}.pdf'})
        assert build_base_filename(config, context) == 'Bill_INV-1'

    def test_legacy_template_key(self):
        context = ExecutionContext({'invoiceNumber': 'INV-1'})
        config = RenameConfig.from_dict({'template': 'Legacy_{{invoiceNumber}}'})
        assert build_base_filename(config, context) == 'Legacy_INV-1'

    def test_page_group_template_before_type_template(self):
        context = ExecutionContext({
            'invoiceNumber': 'INV-1',
            'pageGroupFilenameTemplate': 'Group_{{invoiceNumber}}',
            'extractionTypeFilename': 'Type_{{invoiceNumber}}',
        })
        assert build_base_filename(RenameConfig.from_dict({}), context) == 'Group_INV-1'

    def test_default_template(self):
        context = ExecutionContext({'pdfFilename': 'scan.pdf'})
        assert build_base_filename(RenameConfig.from_dict({}), context) == 'Remit_scan'

    def test_missing_value_taken_from_last_api_response(self):
        context = ExecutionContext({})
        config = RenameConfig.from_dict({'filenameTemplate': 'Bill_{{billNumber}}'})
        assert build_base_filename(config, context, last_api_response={'billNumber': 'B-9'}) == 'Bill_B-9'

    def test_timestamp_appended(self):
        context = ExecutionContext({'invoiceNumber': 'INV-1'})
        config = RenameConfig.from_dict({
            'filenameTemplate': '{{invoiceNumber}}',
            'appendTimestamp': True,
            'timestampFormat': 'YYYY-MM-DD',
        })
        assert build_base_filename(config, context, now=datetime(2024, 3, 5)) == 'INV-1_2024-03-05'

    def test_timestamp_formats(self):
        assert format_timestamp(FIXED_NOW, 'YYYYMMDD_HHMMSS') == '20240305_140709'
        assert format_timestamp(FIXED_NOW, 'nonsense') == '20240305'


class TestExecuteRename:
    """Step execution"""

    @pytest.mark.asyncio
    async def test_legacy_config_renames_pdf(self, make_runtime):
        context = ExecutionContext({'invoiceNumber': 'INV-1'})
        step = make_step('rename_pdf', {'template': 'Remit_{{invoiceNumber}}'})

        result = await execute_rename(step, context, make_runtime())

        assert result['renamedFilenames'] == {'pdf': 'Remit_INV-1.pdf'}
        assert context.get('renamedPdfFilename') == 'Remit_INV-1.pdf'
        assert context.get('renamedFilename') == 'Remit_INV-1.pdf'

    @pytest.mark.asyncio
    async def test_primary_follows_format_type(self, make_runtime):
        context = ExecutionContext({'invoiceNumber': 'INV-1'})
        step = make_step('rename_file', {
            'filenameTemplate': 'Out_{{invoiceNumber}}',
            'renamePdf': True,
            'renameCsv': True,
            'appendTimestamp': True,
        })

        result = await execute_rename(step, context, make_runtime(format_type='CSV'))

        assert result['primaryFilename'] == 'Out_INV-1_20240305.csv'
        assert context.get('renamedPdfFilename') == 'Out_INV-1_20240305.pdf'
        assert context.get('renamedCsvFilename') == 'Out_INV-1_20240305.csv'
        assert context.get('actualFilename') == 'Out_INV-1_20240305.csv'

    @pytest.mark.asyncio
    async def test_primary_falls_back_to_first_enabled_type(self, make_runtime):
        context = ExecutionContext({})
        step = make_step('rename_file', {'filenameTemplate': 'Out', 'renameJson': True, 'renameXml': True})

        result = await execute_rename(step, context, make_runtime(format_type='CSV'))

        assert result['primaryFilename'] == 'Out.json'
        assert context.get('renamedXmlFilename') == 'Out.xml'
