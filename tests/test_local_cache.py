"""Unit tests for LocalStore, LayeredCache, RouteCache and PlannerStore."""
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import Mock

import pytest
from botocore.exceptions import ClientError

from storage.layered_cache import JsonFileCacheBackend, LayeredCache, RemoteCacheBackend
from storage.local_store import LocalStore
from storage.planner_store import PlannerStore, sanitize_planner
from storage.route_cache import RouteCache, sanitize_route


@pytest.fixture
def local_store(tmp_path):
    """Create a LocalStore in a temporary directory."""
    return LocalStore(str(tmp_path / 'data'))


def client_error(operation='GetItem'):
    return ClientError({'Error': {'Code': 'ResourceNotFoundException', 'Message': 'missing'}}, operation)


class TestLocalStore:
    """Test cases for LocalStore."""

    def test_missing_file_reads_none(self, local_store):
        """Test reading a file that does not exist."""
        assert local_store.read_json('nope.json') is None

    def test_write_then_read(self, local_store):
        """Test documents survive a write/read cycle and the directory is created."""
        local_store.write_json('doc.json', {'a': [1, 2]})

        assert local_store.read_json('doc.json') == {'a': [1, 2]}
        assert local_store.path_for('doc.json').exists()

    def test_corrupt_file_reads_none(self, local_store):
        """Test an unparseable file is treated as missing."""
        local_store.data_dir.mkdir(parents=True)
        local_store.path_for('bad.json').write_text('{not json', encoding='utf-8')

        assert local_store.read_json('bad.json') is None

    def test_write_leaves_no_temp_files(self, local_store):
        """Test atomic replacement cleans up its temporary file."""
        local_store.write_json('doc.json', {'v': 1})
        local_store.write_json('doc.json', {'v': 2})

        assert sorted(path.name for path in local_store.data_dir.iterdir()) == ['doc.json']
        assert local_store.read_json('doc.json') == {'v': 2}


class TestLayeredCache:
    """Test cases for LayeredCache."""

    def test_local_hit_skips_remote(self, local_store):
        """Test a local hit never consults the remote backend."""
        local = JsonFileCacheBackend(local_store, 'cache.json')
        local.set('k', {'v': 1})
        remote = Mock()
        cache = LayeredCache(local, remote)

        assert cache.get('k') == {'v': 1}
        remote.get.assert_not_called()

    def test_remote_hit_populates_local(self, local_store):
        """Test a remote hit is copied to the local backend."""
        local = JsonFileCacheBackend(local_store, 'cache.json')
        remote = RemoteCacheBackend(getter=lambda key: {'v': key}, setter=Mock())
        cache = LayeredCache(local, remote)

        assert cache.get('k') == {'v': 'k'}
        assert local_store.read_json('cache.json') == {'k': {'v': 'k'}}

    def test_remote_errors_swallowed(self, local_store):
        """Test remote read and write failures do not propagate."""
        setter = Mock(side_effect=client_error('PutItem'))
        remote = RemoteCacheBackend(getter=Mock(side_effect=client_error()), setter=setter)
        cache = LayeredCache(JsonFileCacheBackend(local_store, 'cache.json'), remote)

        assert cache.get('k') is None
        cache.set('k', {'v': 1})

        assert cache.get('k') == {'v': 1}
        setter.assert_called_once_with('k', {'v': 1})

    def test_none_never_stored(self, local_store):
        """Test a None value is not written."""
        cache = LayeredCache(JsonFileCacheBackend(local_store, 'cache.json'))

        cache.set('k', None)

        assert local_store.read_json('cache.json') is None

    def test_sanitize_drops_bad_entries_on_load(self, local_store):
        """Test malformed persisted entries are dropped when loading."""
        local_store.write_json('cache.json', {'good': {'v': 1}, 'bad': 'oops'})
        backend = JsonFileCacheBackend(
            local_store, 'cache.json', sanitize=lambda value: value if isinstance(value, dict) else None
        )

        assert len(backend) == 1
        assert backend.get('bad') is None

    def test_concurrent_sets_all_persisted(self, local_store):
        """Test writers on separate threads never lose or corrupt entries."""
        backend = JsonFileCacheBackend(local_store, 'cache.json')

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda i: backend.set(f"key-{i}", {'v': i}), range(64)))

        persisted = local_store.read_json('cache.json')
        assert len(persisted) == 64
        assert persisted['key-63'] == {'v': 63}
        assert len(JsonFileCacheBackend(local_store, 'cache.json')) == 64


class TestRouteCache:
    """Test cases for RouteCache."""

    def test_sanitize_route(self):
        """Test totals are clamped and a polyline is required."""
        assert sanitize_route({'encodedPolyline': 'abc', 'totalDistanceMeters': -5, 'totalDurationSeconds': '60'}) == {
            'encodedPolyline': 'abc',
            'totalDistanceMeters': 0,
            'totalDurationSeconds': 60.0,
        }
        assert sanitize_route({'totalDistanceMeters': 10}) is None

    def test_save_and_get(self, local_store):
        """Test a saved route is returned and mirrored remotely."""
        remote = Mock()
        routes = RouteCache(local_store, remote)

        assert routes.save('a|b|walk', {'encodedPolyline': 'xyz', 'totalDistanceMeters': 120}) is True
        assert routes.get('a|b|walk')['encodedPolyline'] == 'xyz'
        remote.put_route.assert_called_once()

    def test_save_rejects_invalid(self, local_store):
        """Test routes without a key or polyline are not saved."""
        routes = RouteCache(local_store)

        assert routes.save('', {'encodedPolyline': 'xyz'}) is False
        assert routes.save('k', {'encodedPolyline': ''}) is False


class TestPlannerStore:
    """Test cases for PlannerStore."""

    def test_sanitize_planner(self):
        """Test items are cleaned, clamped and given a minimum length."""
        cleaned = sanitize_planner({
            '2026-03-07': [
                {'id': 'p1', 'kind': 'event', 'sourceKey': 'evt', 'title': 'Demo', 'startMinutes': 600, 'endMinutes': 610},
                {'sourceKey': '', 'title': 'dropped'},
                'junk',
            ],
            '2026-03-08': [],
        })

        assert list(cleaned) == ['2026-03-07']
        item = cleaned['2026-03-07'][0]
        assert item['startMinutes'] == 600
        assert item['endMinutes'] == 630
        assert item['kind'] == 'event'

    def test_save_local_only(self, local_store):
        """Test saving without a remote store persists locally."""
        store = PlannerStore(local_store)

        result = store.save({'2026-03-07': [{'sourceKey': 'place-1', 'startMinutes': -10, 'endMinutes': 2000}]})

        assert result['persisted'] == 'local'
        item = result['plannerByDate']['2026-03-07'][0]
        assert (item['startMinutes'], item['endMinutes']) == (0, 1440)
        assert item['kind'] == 'place'
        assert store.load()['plannerByDate'] == result['plannerByDate']

    def test_remote_failure_falls_back_to_local(self, local_store):
        """Test remote errors on save and load fall back to the local copy."""
        remote = Mock()
        remote.put_planner_state.side_effect = client_error('PutItem')
        remote.get_planner_state.side_effect = client_error()
        store = PlannerStore(local_store, remote)

        saved = store.save({'2026-03-07': [{'sourceKey': 'evt', 'startMinutes': 60, 'endMinutes': 120}]}, 'room-1')
        loaded = store.load('room-1')

        assert saved['persisted'] == 'local'
        assert loaded['source'] == 'local'
        assert loaded['plannerByDate'] == saved['plannerByDate']

    def test_remote_state_preferred(self, local_store):
        """Test remote planner state wins when available."""
        remote = Mock()
        remote.get_planner_state.return_value = {
            'plannerByDate': {'2026-03-07': [{'id': 'p', 'sourceKey': 'evt', 'startMinutes': 0, 'endMinutes': 60}]}
        }
        store = PlannerStore(local_store, remote)

        loaded = store.load()

        assert loaded['source'] == 'remote'
        assert loaded['plannerByDate']['2026-03-07'][0]['id'] == 'p'
