"""Unit tests for data models."""
import pytest

from processor.models import INGESTION_STAGES, IngestionError, Source


@pytest.fixture
def source():
    """Create a sample event source."""
    return Source(id='e1', source_type='event', url='https://luma.com/calendar/a', label='A')


class TestIngestionError:
    """Test cases for IngestionError.for_source."""

    @pytest.mark.parametrize('stage', INGESTION_STAGES)
    def test_known_stages(self, source, stage):
        """Test every pipeline stage is accepted and attributed to the source."""
        error = IngestionError.for_source(source, stage, '  request\n timed out ', event_url='https://luma.com/x')

        assert error.stage == stage
        assert error.source_id == 'e1'
        assert error.source_url == 'https://luma.com/calendar/a'
        assert error.message == 'request timed out'

    def test_unknown_stage_rejected(self, source):
        """Test a stage outside the pipeline is refused."""
        with pytest.raises(ValueError, match='geocode'):
            IngestionError.for_source(source, 'geocode', 'boom')
