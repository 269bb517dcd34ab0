"""
test_api_server.py
~~~~~~~~~~~~~~~~~~

Tests for the REST API, using the Flask test client.
"""

import pytest
import base64
import os
import sys
import time

import numpy as np

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from gridnet.api_server import (
    MAX_FINISHED_JOBS,
    NetworkState,
    cleanup_finished_training_jobs,
    create_app,
)
from gridnet.model_persistence import load_network, save_network
from gridnet.network import Network
from gridnet.patterns import create_digit_pattern


@pytest.fixture
def model_path(tmp_path):
    """Network file holding a small, untrained production-sized network."""
    path = str(tmp_path / "network_data.json")
    save_network(Network(rng=np.random.default_rng(0)), path)
    return path


@pytest.fixture
def app(model_path):
    return create_app(model_path=model_path, epochs=1, async_mode='threading')


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def state(app):
    return app.extensions['gridnet']


def wait_for_job(client, job_id, timeout=30.0):
    """Poll a training job until it finishes."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        job = client.get(f'/api/training/{job_id}').get_json()
        if job['status'] in ('completed', 'failed'):
            return job
        time.sleep(0.05)
    pytest.fail(f"Training job {job_id} did not finish")


@pytest.mark.unit
class TestStatus:
    """Test informational endpoints."""

    def test_status(self, client):
        """Test that the server reports a loaded network."""
        response = client.get('/api/status')
        data = response.get_json()

        assert response.status_code == 200
        assert data['status'] == 'online'
        assert data['network_loaded'] is True
        assert data['training_jobs'] == 0

    def test_network_info(self, client, model_path):
        """Test the architecture description."""
        data = client.get('/api/network').get_json()

        assert data['architecture'] == [100, 300, 10]
        assert data['learning_rate'] == 0.005
        assert data['model_path'] == model_path

    def test_network_info_without_network(self, tmp_path):
        """Test that a server without a network reports 404."""
        app = create_app(model_path=str(tmp_path / "none.json"),
                         async_mode='threading', autoload=False)
        response = app.test_client().get('/api/network')
        assert response.status_code == 404

    def test_unknown_job(self, client):
        """Test that an unknown job id returns 404."""
        assert client.get('/api/training/nope').status_code == 404


@pytest.mark.unit
class TestRecognize:
    """Test digit recognition requests."""

    def test_recognize_grid(self, client, state):
        """Test recognition from a 10x10 grid of rows."""
        pattern = create_digit_pattern(7)
        response = client.post('/api/recognize', json={
            'grid': pattern.reshape(10, 10).astype(int).tolist()
        })
        data = response.get_json()

        expected = state.network.feedforward(pattern)
        assert response.status_code == 200
        assert data['predicted_digit'] == int(np.argmax(expected))
        assert data['confidence'] == pytest.approx(float(expected.max()))
        assert data['confidences'] == pytest.approx(expected.tolist())
        assert len(data['grid'].split('\n')) == 11

    def test_recognize_cells(self, client, state):
        """Test recognition from 'x,y' cell pairs."""
        response = client.post('/api/recognize', json={'cells': '5,2 5,3 5,4'})
        data = response.get_json()

        x = np.zeros(100)
        x[[25, 35, 45]] = 1.0
        assert response.status_code == 200
        assert data['confidences'] == pytest.approx(state.network.feedforward(x).tolist())

    def test_recognize_invalid_cells(self, client):
        """Test that bad cell pairs are reported with details."""
        response = client.post('/api/recognize', json={'cells': '5,2 12,3 x'})
        data = response.get_json()

        assert response.status_code == 400
        assert len(data['details']) == 2

    def test_recognize_wrong_grid_size(self, client):
        """Test that a grid with the wrong number of cells is rejected."""
        response = client.post('/api/recognize', json={'grid': [1] * 99})
        assert response.status_code == 400

    def test_recognize_empty_grid(self, client, state):
        """Test that an empty grid is classified like any other input."""
        response = client.post('/api/recognize', json={'grid': [0] * 100})
        data = response.get_json()

        assert response.status_code == 200
        assert len(data['confidences']) == 10
        assert data['confidences'] == pytest.approx(
            state.network.feedforward(np.zeros(100)).tolist()
        )

    @pytest.mark.parametrize('body', [[1, 2], [5], 'grid', 7])
    def test_recognize_non_object_body(self, client, body):
        """Test that a JSON body that is not an object is rejected."""
        response = client.post('/api/recognize', json=body)
        assert response.status_code == 400
        assert response.get_json()['error'] == 'Request body must be a JSON object'

    def test_recognize_missing_body(self, client):
        """Test that a request without grid or cells is rejected."""
        assert client.post('/api/recognize', json={}).status_code == 400

    def test_recognize_without_network(self, tmp_path):
        """Test that recognition before a network exists returns 409."""
        app = create_app(model_path=str(tmp_path / "none.json"),
                         async_mode='threading', autoload=False)
        response = app.test_client().post('/api/recognize', json={'cells': '1,1'})
        assert response.status_code == 409


@pytest.mark.unit
class TestPatterns:
    """Test the canonical pattern preview."""

    def test_pattern_preview(self, client):
        """Test that the pattern, text grid and PNG are returned."""
        response = client.get('/api/patterns/1')
        data = response.get_json()

        assert response.status_code == 200
        assert data['pattern'] == create_digit_pattern(1).tolist()
        assert base64.b64decode(data['image_data']).startswith(b'\x89PNG')

    def test_pattern_out_of_range(self, client):
        """Test that digits above 9 are not found."""
        assert client.get('/api/patterns/12').status_code == 404


@pytest.mark.unit
class TestPersistenceEndpoints:
    """Test saving and loading through the API."""

    def test_save(self, client, state, model_path):
        """Test that the current network is written to the model file."""
        state.network.bias_output[:] = 0.25
        response = client.post('/api/network/save')

        assert response.status_code == 200
        assert np.all(load_network(model_path).bias_output == 0.25)

    def test_load_replaces_network(self, client, state, model_path):
        """Test that loading installs the network from the file."""
        replacement = Network(rng=np.random.default_rng(42))
        save_network(replacement, model_path)

        response = client.post('/api/network/load')

        assert response.status_code == 200
        assert np.array_equal(state.network.weights_input_hidden,
                              replacement.weights_input_hidden)

    def test_load_corrupt_keeps_network(self, client, state, model_path):
        """Test that a corrupt file leaves the current network in place."""
        current = state.network
        with open(model_path, 'w') as f:
            f.write('corrupt')

        response = client.post('/api/network/load')

        assert response.status_code == 404
        assert state.network is current


@pytest.mark.integration
class TestTrainingEndpoints:
    """Test background training jobs."""

    def test_invalid_epochs(self, client):
        """Test that epochs must be a positive integer."""
        for epochs in (0, -3, 'ten', 1.5, True):
            response = client.post('/api/network/train', json={'epochs': epochs})
            assert response.status_code == 400

    @pytest.mark.parametrize('url', ['/api/network', '/api/network/train'])
    @pytest.mark.parametrize('body', [[5], 'ten'])
    def test_non_object_body(self, client, state, url, body):
        """Test that a JSON body that is not an object starts no job."""
        response = client.post(url, json=body)

        assert response.status_code == 400
        assert response.get_json()['error'] == 'Request body must be a JSON object'
        assert state.training_jobs == {}

    def test_continue_training(self, client, state, model_path):
        """Test that a continue job trains in place and saves the file."""
        network = state.network
        before = network.weights_hidden_output.copy()

        response = client.post('/api/network/train', json={'epochs': 2})
        assert response.status_code == 202

        job = wait_for_job(client, response.get_json()['job_id'])

        assert job['status'] == 'completed'
        assert job['progress'] == 100
        assert state.network is network
        assert not np.array_equal(network.weights_hidden_output, before)
        assert np.array_equal(load_network(model_path).weights_hidden_output,
                              network.weights_hidden_output)

    def test_create_network(self, client, state):
        """Test that a create job swaps in a fresh network."""
        old = state.network

        response = client.post('/api/network', json={'epochs': 1})
        assert response.status_code == 202

        job = wait_for_job(client, response.get_json()['job_id'])

        assert job['status'] == 'completed'
        assert state.network is not old
        assert state.network.sizes == [100, 300, 10]

    def test_missing_file_trains_on_startup(self, tmp_path):
        """Test that a server without a network file trains a new one."""
        path = str(tmp_path / "fresh.json")
        app = create_app(model_path=path, epochs=1, async_mode='threading')
        client = app.test_client()

        job_ids = list(app.extensions['gridnet'].training_jobs)
        assert len(job_ids) == 1

        job = wait_for_job(client, job_ids[0])

        assert job['status'] == 'completed'
        assert app.extensions['gridnet'].network is not None
        assert os.path.exists(path)


@pytest.mark.unit
class TestJobCleanup:
    """Test pruning of finished training jobs."""

    def make_state(self, statuses):
        state = NetworkState(model_path='unused.json', epochs=1)
        for i, status in enumerate(statuses):
            state.training_jobs[f'job-{i}'] = {
                'job_id': f'job-{i}', 'mode': 'create', 'status': status
            }
        return state

    def test_oldest_finished_jobs_removed(self):
        """Test that only the newest MAX_FINISHED_JOBS finished jobs are kept."""
        total = MAX_FINISHED_JOBS + 5
        statuses = ['completed' if i % 2 else 'failed' for i in range(total)]
        state = self.make_state(statuses)

        cleanup_finished_training_jobs(state)

        assert len(state.training_jobs) == MAX_FINISHED_JOBS
        assert 'job-0' not in state.training_jobs
        assert f'job-{total - 1}' in state.training_jobs

    def test_active_jobs_kept(self):
        """Test that pending and training jobs are never removed."""
        statuses = ['pending'] + ['completed'] * (MAX_FINISHED_JOBS + 3) + ['training']
        state = self.make_state(statuses)

        cleanup_finished_training_jobs(state)

        assert 'job-0' in state.training_jobs
        assert f'job-{len(statuses) - 1}' in state.training_jobs
        assert len(state.training_jobs) == MAX_FINISHED_JOBS + 2

    def test_nothing_removed_under_limit(self):
        """Test that a short history is left alone."""
        state = self.make_state(['completed'] * 3)
        cleanup_finished_training_jobs(state)
        assert len(state.training_jobs) == 3

    def test_new_job_prunes_history(self, client, state):
        """Test that starting a job keeps the finished history bounded."""
        for i in range(MAX_FINISHED_JOBS + 5):
            state.training_jobs[f'old-{i}'] = {
                'job_id': f'old-{i}', 'mode': 'create', 'status': 'completed'
            }

        response = client.post('/api/network', json={'epochs': 1})
        assert response.status_code == 202
        job_id = response.get_json()['job_id']

        assert 'old-0' not in state.training_jobs
        assert job_id in state.training_jobs
        wait_for_job(client, job_id)
