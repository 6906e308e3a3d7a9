"""
Tests for supervisor project management
"""


def _new_project(client, supervisor_uid, title, **extra):
    payload = {'title': title, 'description': 'desc', 'supervisorUid': supervisor_uid, **extra}
    return client.post('/projects', json=payload)


class TestProjectCreation:

    def test_new_project_is_open_and_unbooked(self, project):
        assert project['status'] == 'open'
        assert project['isBooked'] is False
        assert project['bookedBy'] is None
        assert project['technologies'] == ['Flutter', 'Firebase']

    def test_title_unique_ignoring_case(self, client, supervisor, project):
        response = _new_project(client, supervisor['firebaseUid'], 'CAMPUS navigation app')

        assert response.status_code == 409
        assert response.json() == {'message': 'Project title already exists'}

    def test_title_with_regex_characters(self, client, supervisor):
        assert _new_project(client, supervisor['firebaseUid'], 'C++ (v2) tools').status_code == 200
        assert _new_project(client, supervisor['firebaseUid'], 'C+ (v2) tools').status_code == 200
        assert _new_project(client, supervisor['firebaseUid'], 'c++ (V2) TOOLS').status_code == 409

    def test_requires_fields(self, client):
        response = client.post('/projects', json={'title': 'Only a title'})

        assert response.status_code == 400


class TestProjectListing:

    def test_search_returns_open_projects(self, client, supervisor, project):
        other = _new_project(client, supervisor['firebaseUid'], 'Blockchain Voting').json()
        client.patch(f"/projects/{other['id']}/archive", json={})

        assert [p['id'] for p in client.get('/projects').json()] == [project['id']]
        assert [p['id'] for p in client.get('/projects', params={'search': 'navig'}).json()] == [project['id']]
        assert client.get('/projects', params={'search': 'voting'}).json() == []

    def test_malformed_search_is_a_bad_request(self, client, project):
        for pattern in ('*start', '('):
            response = client.get('/projects', params={'search': pattern})

            assert response.status_code == 400
            assert response.json() == {'message': 'Invalid search pattern'}

    def test_mine_includes_archived(self, client, supervisor, project):
        client.patch(f"/projects/{project['id']}/archive", json={'supervisorUid': supervisor['firebaseUid']})

        response = client.get('/projects/mine', params={'supervisorUid': supervisor['firebaseUid']})

        assert response.status_code == 200
        assert [p['status'] for p in response.json()] == ['archived']

    def test_mine_requires_supervisor(self, client):
        assert client.get('/projects/mine').status_code == 400

    def test_get_by_id(self, client, project):
        assert client.get(f"/projects/{project['id']}").json()['title'] == project['title']

    def test_invalid_id(self, client):
        response = client.get('/projects/not-an-id')

        assert response.status_code == 400
        assert response.json() == {'message': 'Invalid id format'}

    def test_missing_project(self, client):
        assert client.get('/projects/0123456789abcdef01234567').status_code == 404


class TestProjectOwnership:

    def test_owner_can_edit(self, client, supervisor, project):
        response = client.patch(
            f"/projects/{project['id']}",
            json={'supervisorUid': supervisor['firebaseUid'], 'duration': '6 months'},
        )

        assert response.status_code == 200
        assert response.json()['duration'] == '6 months'

    def test_other_supervisor_cannot_edit(self, client, project):
        response = client.patch(f"/projects/{project['id']}", json={'supervisorUid': 'someone-else', 'title': 'Mine now'})

        assert response.status_code == 403

    def test_edit_keeps_title_unique(self, client, supervisor, project):
        _new_project(client, supervisor['firebaseUid'], 'Smart Parking')

        response = client.patch(
            f"/projects/{project['id']}",
            json={'supervisorUid': supervisor['firebaseUid'], 'title': 'smart parking'},
        )

        assert response.status_code == 409

    def test_edit_may_keep_own_title(self, client, supervisor, project):
        response = client.patch(
            f"/projects/{project['id']}",
            json={'supervisorUid': supervisor['firebaseUid'], 'title': 'Campus Navigation APP'},
        )

        assert response.status_code == 200

    def test_delete(self, client, supervisor, project, db):
        response = client.delete(f"/projects/{project['id']}", params={'supervisorUid': supervisor['firebaseUid']})

        assert response.status_code == 200
        assert db['projects'].count_documents({}) == 0

    def test_delete_by_non_owner(self, client, project):
        response = client.delete(f"/projects/{project['id']}", params={'supervisorUid': 'intruder'})

        assert response.status_code == 403

    def test_cannot_delete_booked_project(self, client, supervisor, student, project, db):
        client.post('/applications', json={
            'studentUid': student['firebaseUid'],
            'projectId': project['id'],
            'supervisorUid': supervisor['firebaseUid'],
        })

        response = client.delete(f"/projects/{project['id']}")

        assert response.status_code == 409
        assert db['projects'].count_documents({}) == 1
