"""
RESTバックエンド（Variant B）統合テスト
aiohttp.web の /todos 疑似サーバーに対して実行
"""

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from folder_todo.core.exceptions import NotFoundError, TransportError
from folder_todo.layers.state_layer import AppController
from folder_todo.layers.storage_layer import LocalStateStore, RestBackend, RestTodoClient


class FakeTodoApi:
    """/todos 資源だけを持つ疑似APIサーバー"""

    def __init__(self):
        self.todos = {}
        self.requests = []
        self.counter = 0
        self.wrap = False
        self.malformed = False
        self.fail_status = None
        self.base_url = ""

    def make_app(self) -> web.Application:
        app = web.Application()
        app.add_routes([
            web.get('/todos', self.list_todos),
            web.post('/todos', self.create_todo),
            web.put('/todos/{todo_id}', self.update_todo),
            web.delete('/todos/{todo_id}', self.delete_todo),
        ])
        return app

    def _record(self, request, body=None):
        self.requests.append({
            'method': request.method,
            'path': request.path,
            'body': body,
            'authorization': request.headers.get('Authorization'),
        })

    async def list_todos(self, request):
        self._record(request)
        if self.malformed:
            return web.Response(text="<html>maintenance</html>", content_type="text/html")
        if self.fail_status:
            return web.json_response({'error': 'boom'}, status=self.fail_status)

        records = list(self.todos.values())
        return web.json_response({'data': records} if self.wrap else records)

    async def create_todo(self, request):
        body = await request.json()
        self._record(request, body)

        self.counter += 1
        record = {
            '_id': f"t{self.counter}",
            'title': body['title'],
            'description': body.get('description', ''),
            'createdAt': f"2024-01-01T00:00:{self.counter:02d}.000Z",
        }
        self.todos[record['_id']] = record
        return web.json_response(record, status=201)

    async def update_todo(self, request):
        body = await request.json()
        self._record(request, body)

        todo_id = request.match_info['todo_id']
        if todo_id not in self.todos:
            return web.json_response({'error': 'not found'}, status=404)

        self.todos[todo_id].update(title=body['title'], description=body.get('description', ''))
        return web.json_response(self.todos[todo_id])

    async def delete_todo(self, request):
        self._record(request)

        todo_id = request.match_info['todo_id']
        if self.todos.pop(todo_id, None) is None:
            return web.json_response({'error': 'not found'}, status=404)
        return web.Response(status=204)


@pytest.fixture
async def fake_api():
    api = FakeTodoApi()
    server = TestServer(api.make_app())
    await server.start_server()
    api.base_url = str(server.make_url(''))
    yield api
    await server.close()


@pytest.fixture
async def rest_backend(fake_api, tmp_path):
    backend = RestBackend(
        RestTodoClient(fake_api.base_url, api_token="secret-token"),
        LocalStateStore(tmp_path / "local_state.db")
    )
    yield backend
    await backend.close()


class TestRestTodoClient:
    """HTTPクライアントのエラー対応"""

    @pytest.mark.asyncio
    async def test_bearer_token_sent(self, fake_api):
        client = RestTodoClient(fake_api.base_url, api_token="secret-token")
        try:
            await client.list()
        finally:
            await client.close()

        assert fake_api.requests[-1]['authorization'] == "Bearer secret-token"

    @pytest.mark.asyncio
    async def test_wrapped_list_response(self, fake_api):
        fake_api.wrap = True
        fake_api.todos['a'] = {'_id': 'a', 'title': 'x'}

        client = RestTodoClient(fake_api.base_url)
        try:
            assert await client.list() == [{'_id': 'a', 'title': 'x'}]
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_non_json_is_transport_error(self, fake_api):
        fake_api.malformed = True
        client = RestTodoClient(fake_api.base_url)
        try:
            with pytest.raises(TransportError):
                await client.list()
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_server_error_is_transport_error(self, fake_api):
        fake_api.fail_status = 503
        client = RestTodoClient(fake_api.base_url)
        try:
            with pytest.raises(TransportError) as exc_info:
                await client.list()
        finally:
            await client.close()

        assert exc_info.value.status == 503

    @pytest.mark.asyncio
    async def test_404_is_not_found(self, fake_api):
        client = RestTodoClient(fake_api.base_url)
        try:
            with pytest.raises(NotFoundError):
                await client.update("missing", {'title': 'x', 'description': ''})
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_unreachable_backend(self):
        client = RestTodoClient("http://127.0.0.1:9", timeout_seconds=2.0)
        try:
            with pytest.raises(TransportError):
                await client.list()
        finally:
            await client.close()


class TestRestBackend:
    """リモート + ローカル状態の照合"""

    @pytest.mark.asyncio
    async def test_folder_tag_round_trip(self, rest_backend, fake_api, clock):
        folder = await rest_backend.create_folder("仕事", clock())
        created = await rest_backend.create_todo("報告書", folder.id, clock())

        assert fake_api.todos[created.id]['description'] == f"folderId:{folder.id}"

        todos = await rest_backend.list_todos()
        assert len(todos) == 1
        assert todos[0].id == created.id
        assert todos[0].text == "報告書"
        assert todos[0].folder_id == folder.id
        assert todos[0].completed is False

    @pytest.mark.asyncio
    async def test_toggle_is_never_sent_remotely(self, rest_backend, fake_api, clock):
        todo = await rest_backend.create_todo("x", None, clock())
        request_count = len(fake_api.requests)

        await rest_backend.set_todo_completed(todo, True, clock())

        assert len(fake_api.requests) == request_count
        assert 'completed' not in fake_api.todos[todo.id]
        assert (await rest_backend.list_todos())[0].completed is True

    @pytest.mark.asyncio
    async def test_update_preserves_folder_tag(self, rest_backend, fake_api, clock):
        folder = await rest_backend.create_folder("仕事", clock())
        todo = await rest_backend.create_todo("old", folder.id, clock())

        await rest_backend.update_todo_text(todo, "new", clock())

        put = fake_api.requests[-1]
        assert put['method'] == 'PUT'
        assert put['body'] == {'title': 'new', 'description': f"folderId:{folder.id}"}
        assert (await rest_backend.list_todos())[0].folder_id == folder.id

    @pytest.mark.asyncio
    async def test_edit_keeps_note_from_other_client(self, rest_backend, fake_api, clock):
        folder = await rest_backend.create_folder("仕事", clock())
        fake_api.todos['legacy'] = {
            '_id': 'legacy', 'title': 'old',
            'description': f"folderId:{folder.id}\nレシートを忘れない",
        }

        controller = AppController(rest_backend, clock=clock)
        await controller.start()
        try:
            await controller.edit_todo('legacy', 'new')
        finally:
            await controller.close()

        assert fake_api.todos['legacy']['description'] == f"folderId:{folder.id}\nレシートを忘れない"
        assert (await rest_backend.list_todos())[0].note == "レシートを忘れない"

    @pytest.mark.asyncio
    async def test_edit_keeps_untagged_description(self, rest_backend, fake_api, clock):
        fake_api.todos['legacy'] = {'_id': 'legacy', 'title': 'old', 'description': 'メモ'}

        todo = (await rest_backend.list_todos())[0]
        await rest_backend.update_todo_text(todo, "new", clock())

        assert fake_api.requests[-1]['body'] == {'title': 'new', 'description': 'メモ'}

    @pytest.mark.asyncio
    async def test_delete_removes_local_completion(self, rest_backend, fake_api, clock):
        todo = await rest_backend.create_todo("x", None, clock())
        await rest_backend.set_todo_completed(todo, True, clock())

        await rest_backend.delete_todo(todo.id)

        assert fake_api.todos == {}
        assert await rest_backend.local_state.get_completion_map() == {}

    @pytest.mark.asyncio
    async def test_delete_missing_todo(self, rest_backend):
        await rest_backend.local_state.set_completed("gone", True)

        with pytest.raises(NotFoundError):
            await rest_backend.delete_todo("gone")
        assert await rest_backend.local_state.get_completion_map() == {}

    @pytest.mark.asyncio
    async def test_folders_are_local(self, rest_backend, fake_api, clock):
        folder = await rest_backend.create_folder("仕事", clock())
        await rest_backend.update_folder(folder.id, "家", clock())

        assert [item.name for item in await rest_backend.list_folders()] == ["家"]
        assert fake_api.requests == []

        await rest_backend.delete_folder(folder.id)
        with pytest.raises(NotFoundError):
            await rest_backend.delete_folder(folder.id)

    @pytest.mark.asyncio
    async def test_untagged_remote_todo(self, rest_backend, fake_api):
        fake_api.todos['legacy'] = {'_id': 'legacy', 'title': '古いタスク', 'description': 'メモ'}

        todo = (await rest_backend.list_todos())[0]
        assert todo.folder_id is None
        assert todo.completed is False


class TestControllerOverRest:
    """コントローラ経由の一連の操作"""

    @pytest.mark.asyncio
    async def test_full_flow(self, rest_backend, fake_api, clock):
        controller = AppController(rest_backend, clock=clock)
        await controller.start()
        try:
            todo = await controller.add_todo("牛乳", new_folder_name="買い物")
            await controller.toggle_todo(todo.id)
            snapshot = await controller.select_folder(todo.folder_id)

            assert snapshot.current_folder.name == "買い物"
            assert [(item.text, item.completed) for item in snapshot.todos] == [("牛乳", True)]

            await controller.delete_folder(todo.folder_id)
            assert fake_api.todos == {}

            assert controller.snapshot().counts.total == 0
        finally:
            await controller.close()
