"""Tests for the gateway upload and merge endpoints."""

import dataclasses

import pytest
from fastapi.testclient import TestClient

from gateway.main import create_app

ORIGINAL = b'AAAAABBBBBCCCCCDDD'
CHUNKS = {1: b'AAAAA', 2: b'BBBBB', 3: b'CCCCC', 4: b'DDD'}


@pytest.fixture
def client(settings):
    """Create FastAPI test client."""
    with TestClient(create_app(settings)) as test_client:
        yield test_client


def chunk_fields(number, total=4, relative_path='docs/data.bin', filename='data.bin', identifier='18-data'):
    return {
        'identifier': identifier,
        'relativePath': relative_path,
        'filename': filename,
        'chunkNumber': str(number),
        'totalChunks': str(total),
        'chunkSize': '5',
        'currentChunkSize': str(len(CHUNKS.get(number, b''))),
        'totalSize': '18',
    }


def post_chunk(client, number, data=None, **overrides):
    fields = chunk_fields(number)
    fields.update(overrides)
    payload = CHUNKS[number] if data is None else data
    return client.post('/upload/multiple', data=fields, files={'file': ('blob', payload)})


def merge_body(**overrides):
    body = {
        'identifier': '18-data',
        'relativePath': 'docs/data.bin',
        'filename': 'data.bin',
        'totalChunks': 4,
    }
    body.update(overrides)
    return body


def test_root_endpoint(client):
    """Test health check endpoint."""
    response = client.get('/?id=42')
    assert response.status_code == 200
    assert response.json()['status'] == 'running'
    assert response.json()['id'] == '42'


def test_out_of_order_upload_then_merge(client):
    need_merge = []
    for number in (2, 4, 1, 3):
        response = post_chunk(client, number)
        assert response.status_code == 200
        body = response.json()
        assert body['code'] == 0
        assert body['data']['chunkNumber'] == number
        assert body['data']['folderPath'] == 'docs'
        assert body['data']['storedSize'] == len(CHUNKS[number])
        need_merge.append(body['needMerge'])

    assert need_merge == [False, False, False, True]

    response = client.post('/upload/merge', json=merge_body())
    assert response.status_code == 200
    data = response.json()['data']
    assert data['fileSize'] == 18
    assert data['originalFolderPath'] == 'docs'
    assert data['originalName'] == 'data.bin'
    assert data['filePath'] == f"docs/{data['fileName']}"
    assert data['fullUrl'].endswith(f"/uploads/{data['filePath']}")
    assert data['sizeMismatch'] is False

    download = client.get(f"/uploads/{data['filePath']}")
    assert download.status_code == 200
    assert download.content == ORIGINAL


def test_put_is_accepted_for_chunks(client):
    fields = chunk_fields(1, total=1)
    response = client.put('/upload/multiple', data=fields, files={'file': ('blob', b'solo')})

    assert response.status_code == 200
    assert response.json()['needMerge'] is True


def test_merge_accepts_form_body(client):
    for number in (1, 2, 3, 4):
        post_chunk(client, number)

    response = client.post('/upload/merge', data={k: str(v) for k, v in merge_body().items()})

    assert response.status_code == 200
    assert response.json()['data']['fileSize'] == 18


def test_missing_chunk_parameters(client):
    fields = chunk_fields(1)
    del fields['identifier']
    fields['relativePath'] = ''
    response = client.post('/upload/multiple', data=fields, files={'file': ('blob', b'x')})

    assert response.status_code == 400
    body = response.json()
    assert body['code'] == -1
    assert body['error'] == 'MISSING_PARAMETER'
    assert body['missing'] == ['identifier', 'relativePath']


def test_missing_file_part(client, settings):
    response = client.post('/upload/multiple', data=chunk_fields(1))

    assert response.status_code == 400
    assert response.json()['missing'] == ['file']
    assert not settings.chunk_root.joinpath('18-data').exists()


@pytest.mark.parametrize('number,total', [('0', '4'), ('5', '4'), ('x', '4'), ('1', 'many')])
def test_invalid_chunk_numbers(client, number, total):
    response = post_chunk(client, 1, chunkNumber=number, totalChunks=total)

    assert response.status_code == 400
    assert response.json()['error'] == 'INVALID_PARAMETER'


def test_traversal_rejected(client, tmp_path, snapshot_tree):
    before = snapshot_tree(tmp_path)

    response = post_chunk(client, 1, relativePath='../../etc/passwd')
    assert response.status_code == 400
    assert response.json()['error'] == 'PATH_TRAVERSAL'

    response = post_chunk(client, 1, filename='../evil.sh')
    assert response.status_code == 400

    response = client.post('/upload/merge', json=merge_body(relativePath='../../etc/passwd'))
    assert response.status_code == 400
    assert response.json()['error'] == 'PATH_TRAVERSAL'

    assert snapshot_tree(tmp_path) == before


def test_merge_with_missing_chunks(client, settings):
    post_chunk(client, 1)
    post_chunk(client, 3)

    response = client.post('/upload/merge', json=merge_body())

    assert response.status_code == 409
    body = response.json()
    assert body['error'] == 'INCOMPLETE_TRANSFER'
    assert body['missingChunks'] == [2, 4]
    assert body['folderPath'] == 'docs'
    assert not (settings.upload_root / 'docs').exists()


def test_merge_missing_parameters(client):
    response = client.post('/upload/merge', json={'identifier': '18-data'})

    assert response.status_code == 400
    assert response.json()['missing'] == ['filename', 'totalChunks', 'relativePath']


def test_merge_with_empty_body(client):
    response = client.post('/upload/merge')

    assert response.status_code == 400
    assert response.json()['error'] == 'MISSING_PARAMETER'


def test_chunk_too_large(settings):
    app = create_app(dataclasses.replace(settings, max_chunk_bytes=4))
    with TestClient(app) as client:
        response = post_chunk(client, 1)

    assert response.status_code == 413
    assert response.json()['error'] == 'CHUNK_TOO_LARGE'


def test_strict_size_mismatch(settings):
    app = create_app(dataclasses.replace(settings, strict_size_check=True))
    with TestClient(app) as client:
        for number in (1, 2, 3, 4):
            post_chunk(client, number)
        response = client.post('/upload/merge', json=merge_body(totalSize=99))

    assert response.status_code == 422
    assert response.json()['error'] == 'SIZE_MISMATCH'


def test_chunks_and_temp_files_are_not_served(client, settings):
    post_chunk(client, 1)
    assert (settings.chunk_root / '18-data' / 'docs' / 'data-chunk-1.bin').is_file()

    assert client.get('/uploads/chunks/18-data/docs/data-chunk-1.bin').status_code == 404

    (settings.upload_root / 'docs').mkdir(parents=True, exist_ok=True)
    (settings.upload_root / 'docs' / '.abc.merging').write_bytes(b'partial')
    assert client.get('/uploads/docs/.abc.merging').status_code == 404


def test_request_id_header(client):
    response = client.get('/', headers={'X-Request-ID': 'req-123'})

    assert response.headers['X-Request-ID'] == 'req-123'
    assert client.get('/').headers['X-Request-ID']


def test_cors_allows_any_origin(client):
    response = client.get('/', headers={'Origin': 'http://example.com'})

    assert response.headers['access-control-allow-origin'] == '*'


def test_second_transfer_with_same_chunk_names_is_rejected(client):
    first = post_chunk(client, 1, relativePath='docs/one.bin')
    assert first.status_code == 200

    response = post_chunk(client, 1, data=b'other', relativePath='docs/two.bin')

    assert response.status_code == 409
    assert response.json()['error'] == 'TRANSFER_CONFLICT'
