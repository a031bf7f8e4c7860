"""Integration tests for BodyFit backend endpoints."""
import json
from io import BytesIO

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from app import app, SESSIONS


@pytest.fixture
def client():
    """Provide a TestClient for the FastAPI app."""
    return TestClient(app)


@pytest.fixture
def session_id(client):
    """A fresh manual-height session."""
    response = client.post('/measure/session', json={'mode': 'manual', 'reference_cm': 175})
    assert response.status_code == 200
    return response.json()['session_id']


class TestHealthEndpoint:
    """Tests for / endpoint."""

    def test_root(self, client):
        response = client.get('/')
        assert response.status_code == 200
        data = response.json()
        assert data['status'] == 'ok'
        assert 'version' in data
        assert data['endpoints']['tryon'] == '/tryon'
        assert 'X-Process-Time' in response.headers


class TestPoseQualityEndpoint:
    """Tests for /pose/quality endpoint."""

    def test_good_pose(self, client, front_keypoints):
        response = client.post('/pose/quality', json={'keypoints': front_keypoints})
        assert response.status_code == 200
        data = response.json()
        assert data['quality'] == 'good'
        assert data['hint'] == 'Perfect! Hold still'

    def test_empty_frame(self, client):
        response = client.post('/pose/quality', json={'keypoints': []})
        assert response.status_code == 200
        assert response.json()['quality'] == 'no-pose'

    def test_too_far(self, client, pose_factory):
        keypoints = pose_factory({'left_shoulder': (230, 150), 'right_shoulder': (270, 150)})
        response = client.post('/pose/quality', json={'keypoints': keypoints})
        assert response.json()['quality'] == 'too-far'

    def test_mediapipe_landmarks(self, client):
        landmarks = [{'x_px': 0.0, 'y_px': 0.0, 'visibility': 0.1} for _ in range(33)]
        response = client.post('/pose/quality', json={'landmarks': landmarks})
        assert response.status_code == 200
        assert response.json()['quality'] == 'partial'

    def test_missing_keypoints(self, client):
        response = client.post('/pose/quality', json={})
        assert response.status_code == 400
        data = response.json()
        assert data['status'] == 'error'
        assert data['error']['code'] == 400
        assert data['error']['path'] == '/pose/quality'

    def test_invalid_keypoint(self, client):
        response = client.post('/pose/quality', json={'keypoints': [{'x': 1, 'y': 1}]})
        assert response.status_code == 400

    def test_invalid_json(self, client):
        response = client.post(
            '/pose/quality',
            content=b'not json',
            headers={'Content-Type': 'application/json'},
        )
        assert response.status_code == 400


class TestMeasurementSessionEndpoints:
    """Tests for /measure/* endpoints."""

    def test_create_session(self, client):
        response = client.post('/measure/session', json={'mode': 'reference', 'reference_cm': 8.5})
        assert response.status_code == 200
        data = response.json()
        assert data['session_id'] in SESSIONS
        assert data['calibration']['calibration_data']['method'] == 'reference_object'

    @pytest.mark.parametrize('payload,message', [
        ({'mode': 'manual', 'reference_cm': 0}, 'valid height between 1-300 cm'),
        ({'mode': 'manual', 'reference_cm': 320}, 'valid height between 1-300 cm'),
        ({'mode': 'reference', 'reference_cm': 150}, 'valid reference height'),
        ({'mode': 'manual'}, ''),
        ({'mode': 'laser', 'reference_cm': 10}, 'Unknown calibration mode'),
    ])
    def test_create_session_invalid(self, client, payload, message):
        response = client.post('/measure/session', json=payload)
        assert response.status_code == 400
        assert message in response.json()['error']['message']

    def test_unknown_session(self, client, front_keypoints):
        response = client.post('/measure/frame', json={'session_id': 'nope', 'keypoints': front_keypoints})
        assert response.status_code == 404
        assert client.post('/measure/session/nope/start').status_code == 404

    def test_frame_before_start_is_idle(self, client, session_id, front_keypoints):
        response = client.post('/measure/frame', json={'session_id': session_id, 'keypoints': front_keypoints})
        assert response.status_code == 200
        data = response.json()
        assert data['state'] == 'idle'
        assert data['quality'] == 'good'
        assert data['measurement'] is None

    def test_complete_capture_flow(self, client, session_id, front_keypoints):
        assert client.post(f'/measure/session/{session_id}/start').json()['capturing'] is True

        for i in range(10):
            response = client.post('/measure/frame', json={'session_id': session_id, 'keypoints': front_keypoints})
            assert response.status_code == 200
            data = response.json()
            if i < 9:
                assert data['state'] == 'collecting'
                assert data['stability']['count'] == i + 1

        assert data['state'] == 'measured'
        assert data['stability']['stable'] is True
        assert data['measurement'] == {
            'shoulderCm': '36.5',
            'torsoCm': '54.7',
            'fullHeightCm': '127.6',
            'chestCm': '47.4',
        }

        export = client.get(f'/measure/session/{session_id}/export')
        assert export.status_code == 200
        assert export.json() == data['measurement']

        inches = client.get(f'/measure/session/{session_id}/export', params={'unit': 'in'})
        assert inches.json()['shoulderIn'] == '14.4'

        assert client.post(f'/measure/session/{session_id}/reset').status_code == 200
        assert client.get(f'/measure/session/{session_id}/export').status_code == 400

    def test_rejected_frame(self, client, session_id, pose_factory):
        client.post(f'/measure/session/{session_id}/start')
        keypoints = pose_factory(drop=('left_ankle', 'right_ankle'))
        data = client.post('/measure/frame', json={'session_id': session_id, 'keypoints': keypoints}).json()
        assert data['state'] == 'rejected'
        assert data['quality'] == 'partial'
        assert data['hint'] == 'Show full body'

    def test_export_before_capture(self, client, session_id):
        response = client.get(f'/measure/session/{session_id}/export')
        assert response.status_code == 400

    def test_delete_session(self, client, session_id):
        response = client.delete(f'/measure/session/{session_id}')
        assert response.status_code == 200
        assert response.json()['deleted'] == session_id
        assert session_id not in SESSIONS

        assert client.delete(f'/measure/session/{session_id}').status_code == 404
        assert client.get(f'/measure/session/{session_id}/export').status_code == 404
        assert client.post(f'/measure/session/{session_id}/start').status_code == 404


class TestMeshEndpoints:
    """Tests for /mesh/body and /mesh/garment endpoints."""

    def test_body_mesh(self, client, front_keypoints):
        response = client.post('/mesh/body', json={'keypoints': front_keypoints, 'height_cm': 175})
        assert response.status_code == 200
        mesh = response.json()['mesh']
        assert mesh['orientation'] == 'front'
        assert mesh['pixelsPerCm'] == pytest.approx(2.0)
        assert mesh['measurementsCm']['shoulderWidthCm'] == pytest.approx(50.0)
        assert mesh['legs']['left']['knee'] == [212.0, 380.0]

    def test_body_mesh_without_shoulders(self, client, pose_factory):
        keypoints = pose_factory(drop=('left_shoulder',))
        response = client.post('/mesh/body', json={'keypoints': keypoints, 'height_cm': 175})
        assert response.status_code == 200
        assert response.json()['mesh'] is None

    @pytest.mark.parametrize('height', [0, -10, 'tall', None, 'inf', 'nan', '1e400'])
    def test_body_mesh_invalid_height(self, client, front_keypoints, height):
        response = client.post('/mesh/body', json={'keypoints': front_keypoints, 'height_cm': height})
        assert response.status_code == 400

    @pytest.mark.parametrize('category,count,points', [
        ('upper_body', 1, 15),
        ('dress', 1, 24),
        ('lower_body', 2, 15),
    ])
    def test_garment_mesh(self, client, front_keypoints, category, count, points):
        response = client.post('/mesh/garment', json={
            'keypoints': front_keypoints,
            'height_cm': 175,
            'category': category,
        })
        assert response.status_code == 200
        data = response.json()
        assert data['category'] == category
        assert data['count'] == count
        for grid in data['grids']:
            assert len(grid['points']) == points
            assert len(grid['uvCoords']) == points

    def test_garment_mesh_invalid_category(self, client, front_keypoints):
        response = client.post('/mesh/garment', json={
            'keypoints': front_keypoints,
            'height_cm': 175,
            'category': 'hat',
        })
        assert response.status_code == 400
        assert 'category must be one of' in response.json()['error']['message']

    def test_garment_mesh_without_shoulders(self, client, pose_factory):
        response = client.post('/mesh/garment', json={
            'keypoints': pose_factory(drop=('right_shoulder',)),
            'height_cm': 175,
            'category': 'dress',
        })
        assert response.status_code == 200
        assert response.json()['count'] == 0


class TestTryOnEndpoint:
    """Tests for /tryon endpoint."""

    def _post(self, client, image, garment, keypoints, category='upper_body', height_cm='175'):
        return client.post(
            '/tryon',
            files={
                'image': ('frame.jpg', image, 'image/jpeg'),
                'garment': ('shirt.png', garment, 'image/png'),
            },
            data={
                'keypoints': keypoints if isinstance(keypoints, str) else json.dumps(keypoints),
                'height_cm': height_cm,
                'category': category,
            },
        )

    @pytest.mark.parametrize('category,drawn', [
        ('upper_body', '8'),
        ('dress', '15'),
        ('lower_body', '16'),
    ])
    def test_tryon_success(self, client, sample_frame_image, sample_garment_image, front_keypoints, category, drawn):
        response = self._post(client, sample_frame_image, sample_garment_image, front_keypoints, category)
        assert response.status_code == 200
        assert response.headers['content-type'] == 'image/jpeg'
        assert response.headers['X-Quads-Drawn'] == drawn
        assert response.headers['X-Quads-Dropped'] == '0'

        rendered = Image.open(BytesIO(response.content))
        assert rendered.size == (640, 480)

    def test_tryon_invalid_image(self, client, sample_garment_image, front_keypoints):
        response = self._post(client, b'invalid', sample_garment_image, front_keypoints)
        assert response.status_code == 400

    def test_tryon_invalid_garment(self, client, sample_frame_image, front_keypoints):
        response = self._post(client, sample_frame_image, b'invalid', front_keypoints)
        assert response.status_code == 400

    def test_tryon_invalid_keypoints(self, client, sample_frame_image, sample_garment_image):
        response = self._post(client, sample_frame_image, sample_garment_image, '{not json')
        assert response.status_code == 400

    def test_tryon_without_shoulders(self, client, sample_frame_image, sample_garment_image, pose_factory):
        keypoints = pose_factory(drop=('left_shoulder', 'right_shoulder'))
        response = self._post(client, sample_frame_image, sample_garment_image, keypoints)
        assert response.status_code == 400

    @pytest.mark.parametrize('height_cm', ['inf', 'nan', '0'])
    def test_tryon_invalid_height(self, client, sample_frame_image, sample_garment_image, front_keypoints, height_cm):
        response = self._post(client, sample_frame_image, sample_garment_image, front_keypoints, height_cm=height_cm)
        assert response.status_code == 400

    def test_tryon_missing_fields(self, client, sample_frame_image):
        response = client.post('/tryon', files={'image': ('frame.jpg', sample_frame_image, 'image/jpeg')})
        assert response.status_code == 422
        assert response.json()['error']['message'] == 'Validation error'
