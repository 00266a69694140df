import json
from functools import partial
from pathlib import Path
from unittest.mock import AsyncMock

import httpx
import pytest

from apiprobe.errors import GenerationError
from apiprobe.transport import httpx_context

APP_JS = """\
const express = require('express');
const app = express();
app.use(express.json());
app.get('/health', (req, res) => res.json({ ok: true }));
app.use(require('./routes/users'));
app.listen(3000);
"""

AUTH_JS = """\
const express = require('express');
const jwt = require('jsonwebtoken');
const router = express.Router();

router.post('/api/login', (req, res) => {
  const token = jwt.sign({ id: 1 }, process.env.JWT_SECRET);
  res.json({ success: true, accessToken: token });
});

module.exports = router;
"""

USERS_JS = """\
const express = require('express');
const router = express.Router();

router.get('/api/users', (req, res) => {
  res.json([{ id: 1, name: 'Ada' }]);
});

router.get('/api/users/:id', (req, res) => {
  res.json({ id: req.params.id });
});





router.post('/api/users', authenticateToken, (req, res) => {
  res.status(201).json(req.body);
});

module.exports = router;
"""

PACKAGE_JSON = {
    "name": "sample-api",
    "dependencies": {"express": "^4.18.2", "jsonwebtoken": "^9.0.0"},
}


def make_factory(handler):
    """Context factory whose httpx client answers through *handler*."""
    return partial(httpx_context, transport=httpx.MockTransport(handler))


def unreachable(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


@pytest.fixture
def sample_project(tmp_path: Path) -> Path:
    """Small Express project: /health, /api/login, and three /api/users routes."""
    (tmp_path / "app.js").write_text(APP_JS)
    (tmp_path / "package.json").write_text(json.dumps(PACKAGE_JSON))
    routes = tmp_path / "routes"
    routes.mkdir()
    (routes / "auth.js").write_text(AUTH_JS)
    (routes / "users.js").write_text(USERS_JS)
    modules = tmp_path / "node_modules" / "express"
    modules.mkdir(parents=True)
    (modules / "router.js").write_text("router.get('/ignored', h);\n")
    return tmp_path


@pytest.fixture
def failing_backend() -> AsyncMock:
    backend = AsyncMock()
    backend.complete.side_effect = GenerationError("backend unavailable")
    return backend
