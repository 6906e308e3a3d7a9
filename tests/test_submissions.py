"""
Tests for IP1 / IP2 submissions and feedback
"""


def _submit(client, kind, student_uid='stu-1', project_id='proj-1'):
    return client.post('/submissions', json={
        'studentUid': student_uid,
        'projectId': project_id,
        'type': kind,
        'fileUrl': '/uploads/report.pdf',
    })


class TestSubmissions:

    def test_one_submission_per_type(self, client, db):
        assert _submit(client, 'IP1').status_code == 200

        duplicate = _submit(client, 'IP1')
        second_type = _submit(client, 'IP2')

        assert duplicate.status_code == 409
        assert duplicate.json() == {'message': 'IP1 already submitted'}
        assert second_type.status_code == 200
        assert db['submissions'].count_documents({}) == 2

    def test_unknown_type(self, client):
        response = _submit(client, 'IP3')

        assert response.status_code == 400
        assert response.json() == {'message': 'type must be IP1 or IP2'}

    def test_required_fields(self, client):
        assert client.post('/submissions', json={'type': 'IP1'}).status_code == 400

    def test_filters(self, client):
        _submit(client, 'IP1')
        _submit(client, 'IP1', student_uid='stu-2', project_id='proj-2')

        by_project = client.get('/submissions', params={'projectId': 'proj-2'}).json()
        everything = client.get('/submissions').json()

        assert [s['studentUid'] for s in by_project] == ['stu-2']
        assert len(everything) == 2


class TestFeedback:

    def test_feedback_notifies_student(self, client):
        submission = _submit(client, 'IP2').json()

        response = client.patch(f"/submissions/{submission['id']}", json={'feedback': 'Expand the evaluation'})

        assert response.status_code == 200
        assert response.json()['feedback'] == 'Expand the evaluation'
        notes = client.get('/notifications', params={'userUid': 'stu-1'}).json()
        assert [n['message'] for n in notes] == ['You received feedback for IP2.']

    def test_feedback_can_be_overwritten(self, client):
        submission = _submit(client, 'IP1').json()
        client.patch(f"/submissions/{submission['id']}", json={'feedback': 'First'})

        response = client.patch(f"/submissions/{submission['id']}", json={'feedback': 'Second'})

        assert response.status_code == 200
        assert response.json()['feedback'] == 'Second'

    def test_feedback_required(self, client):
        submission = _submit(client, 'IP1').json()

        assert client.patch(f"/submissions/{submission['id']}", json={'feedback': ''}).status_code == 400

    def test_missing_submission(self, client):
        response = client.patch('/submissions/0123456789abcdef01234567', json={'feedback': 'x'})

        assert response.status_code == 404
