import json
import logging

from flask import Flask, Response, jsonify, request

from config import Settings
from errors import InvalidInstruction, SessionBusy, ValidationRejected
from generator import ArtifactGenerator
from renderer import SANDBOX_POLICY, render
from session import SessionController
from system_prompt import FIG_EXPORT_GUIDE
from uploads import candidate_from_storage
from validator import ACCEPTED_EXTENSIONS, UnsupportedDesignFile


def build_controller(settings):
    generator = ArtifactGenerator.from_settings(settings)
    return SessionController(
        generator,
        max_image_edge=settings.max_image_edge,
        # a little slack over the HTTP timeout so retries can finish
        timeout=settings.timeout_seconds * (settings.retries + 1) + 5,
    )


def state_payload(snapshot):
    data = snapshot.to_dict()
    data["preview_url"] = render(snapshot.artifact, snapshot.version).url
    return data


def create_app(controller=None):
    if controller is None:
        controller = build_controller(Settings.from_env())

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = 20 * 1024 * 1024
    app.extensions["session_controller"] = controller

    @app.route("/")
    def index():
        return HTML_PAGE.replace(
            "/*__SANDBOX_POLICY__*/", json.dumps(SANDBOX_POLICY),
        ).replace(
            "/*__ACCEPT__*/", json.dumps(",".join(ACCEPTED_EXTENSIONS)),
        )

    @app.route("/api/state")
    def state():
        return jsonify(state_payload(controller.snapshot))

    @app.route("/api/upload", methods=["POST"])
    def upload():
        storage = request.files.get("file")
        if storage is None or not storage.filename:
            return jsonify({"error": "No file provided"}), 400

        candidate = candidate_from_storage(storage)
        try:
            result = controller.on_file_selected(candidate)
        except SessionBusy as e:
            return jsonify({"error": str(e)}), 409
        except ValidationRejected as e:
            return jsonify({"error": e.reason}), 400

        if isinstance(result, UnsupportedDesignFile):
            payload = state_payload(controller.snapshot)
            payload["guide"] = FIG_EXPORT_GUIDE
            return jsonify(payload)
        return jsonify(state_payload(controller.snapshot)), 202

    @app.route("/api/refine", methods=["POST"])
    def refine():
        data = request.get_json(silent=True) or {}
        instruction = str(data.get("instruction", ""))
        try:
            controller.on_instruction_submitted(instruction)
        except SessionBusy as e:
            return jsonify({"error": str(e)}), 409
        except InvalidInstruction as e:
            return jsonify({"error": str(e)}), 400
        return jsonify(state_payload(controller.snapshot)), 202

    @app.route("/api/cancel", methods=["POST"])
    def cancel():
        cancelled = controller.cancel()
        payload = state_payload(controller.snapshot)
        payload["cancelled"] = cancelled
        return jsonify(payload)

    @app.route("/api/dismiss", methods=["POST"])
    def dismiss():
        controller.dismiss_error()
        return jsonify(state_payload(controller.snapshot))

    @app.route("/api/guidance/back", methods=["POST"])
    def guidance_back():
        controller.leave_guidance()
        return jsonify(state_payload(controller.snapshot))

    @app.route("/api/artifact")
    def artifact():
        snapshot = controller.snapshot
        if not snapshot.has_artifact:
            return jsonify({"error": "No code generated yet"}), 404
        return jsonify({"code": snapshot.artifact, "version": snapshot.version})

    @app.route("/preview")
    def preview():
        snapshot = controller.snapshot
        view = render(snapshot.artifact, snapshot.version)
        return Response(view.document, mimetype="text/html", headers=view.headers)

    return app


HTML_PAGE = r"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>Design to HTML Studio</title>
<style>
  *, *::before, *::after { box-sizing: border-box; margin: 0; padding: 0; }

  body {
    font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
    background: #0f0f0f;
    color: #e0e0e0;
    height: 100vh;
    overflow: hidden;
  }

  .split-layout { display: flex; height: 100vh; }

  .stage {
    flex: 1;
    display: flex;
    flex-direction: column;
    overflow: hidden;
  }

  .panel-header {
    padding: 16px 24px;
    border-bottom: 1px solid #1e1e1e;
    display: flex;
    align-items: center;
    gap: 10px;
    flex-shrink: 0;
  }

  .panel-header h2 { font-size: 0.95rem; font-weight: 600; color: #fff; }

  .badge {
    font-size: 0.65rem;
    padding: 2px 8px;
    border-radius: 4px;
    font-weight: 500;
    text-transform: uppercase;
    letter-spacing: 0.5px;
    background: #2e1e3a;
    color: #a78bfa;
  }

  .header-actions { margin-left: auto; display: flex; gap: 8px; }

  button {
    background: #1a1a1a;
    color: #e0e0e0;
    border: 1px solid #2a2a2a;
    border-radius: 8px;
    padding: 6px 12px;
    font-size: 0.8rem;
    cursor: pointer;
    transition: border-color 0.2s, background 0.2s;
  }
  button:hover:not(:disabled) { border-color: #8b5cf6; }
  button:disabled { opacity: 0.5; cursor: default; }
  button.primary { background: #7c3aed; border-color: #7c3aed; color: #fff; }

  .stage-body { flex: 1; position: relative; padding: 20px 24px; overflow: hidden; }

  .drop-zone {
    max-width: 560px;
    margin: 60px auto 0;
    border: 2px dashed #2a2a2a;
    border-radius: 24px;
    padding: 48px;
    text-align: center;
    cursor: pointer;
    transition: border-color 0.2s, background 0.2s, transform 0.2s;
  }
  .drop-zone.active { border-color: #3b82f6; background: rgba(59,130,246,0.08); transform: scale(1.02); }
  .drop-zone.busy { opacity: 0.5; pointer-events: none; }
  .drop-zone h3 { font-size: 1.2rem; color: #fff; margin-bottom: 8px; }
  .drop-zone p { font-size: 0.85rem; color: #888; }

  .guide {
    max-width: 560px;
    margin: 60px auto 0;
    border: 2px solid #2a2a2a;
    border-radius: 24px;
    padding: 40px;
    background: #141414;
  }
  .guide h3 { font-size: 1.3rem; color: #fff; margin-bottom: 8px; }
  .guide p { font-size: 0.85rem; color: #999; line-height: 1.5; }
  .guide ol { margin: 20px 0; padding-left: 20px; font-size: 0.85rem; line-height: 1.9; }
  .guide .tip { margin-top: 16px; font-size: 0.75rem; color: #666; }
  .guide .guide-actions { display: flex; gap: 10px; }

  .preview-wrap {
    width: 100%;
    height: 100%;
    background: #fff;
    border-radius: 12px;
    overflow: hidden;
    box-shadow: 0 20px 50px rgba(0,0,0,0.5);
  }
  .preview-wrap iframe { width: 100%; height: 100%; border: 0; }

  .code-view {
    position: absolute;
    inset: 20px 24px;
    background: #111;
    border: 1px solid #2a2a2a;
    border-radius: 12px;
    overflow: auto;
    padding: 16px;
    font-family: 'SF Mono', Menlo, monospace;
    font-size: 0.75rem;
    white-space: pre;
    display: none;
  }
  .code-view.visible { display: block; }

  .notice {
    position: absolute;
    left: 50%;
    bottom: 24px;
    transform: translateX(-50%);
    width: 90%;
    max-width: 520px;
    padding: 12px 14px;
    border-radius: 12px;
    font-size: 0.8rem;
    background: rgba(239,68,68,0.12);
    border: 1px solid rgba(239,68,68,0.3);
    color: #fecaca;
    display: none;
    align-items: center;
    gap: 10px;
  }
  .notice.visible { display: flex; }
  .notice span { flex: 1; }

  .divider { width: 1px; background: #1e1e1e; flex-shrink: 0; }

  .chat {
    width: 320px;
    display: flex;
    flex-direction: column;
    background: #121212;
    flex-shrink: 0;
  }
  .chat-body { flex: 1; padding: 16px; overflow-y: auto; font-size: 0.82rem; color: #999; line-height: 1.5; }
  .chat-body .example { margin-top: 8px; padding: 8px; border: 1px solid #222; border-radius: 6px; font-style: italic; color: #666; font-size: 0.75rem; }
  .chat-form { padding: 16px; border-top: 1px solid #1e1e1e; display: flex; gap: 8px; }
  .chat-form input {
    flex: 1;
    background: #0a0a0a;
    color: #e0e0e0;
    border: 1px solid #2a2a2a;
    border-radius: 10px;
    padding: 10px 12px;
    font-size: 0.85rem;
    outline: none;
  }
  .chat-form input:focus { border-color: #8b5cf6; }

  .status { font-size: 0.75rem; color: #666; }
  .timer { color: #a78bfa; }

  .spinner {
    width: 14px; height: 14px;
    border: 2px solid #555; border-top-color: transparent;
    border-radius: 50%;
    display: inline-block;
    animation: spin 0.8s linear infinite;
    vertical-align: middle;
    margin-right: 6px;
  }
  @keyframes spin { to { transform: rotate(360deg); } }
  .hidden { display: none !important; }
</style>
</head>
<body>
<div class="split-layout">
  <div class="stage">
    <div class="panel-header">
      <h2>Design to HTML</h2>
      <span class="badge">Tailwind</span>
      <span class="status" id="status"></span>
      <div class="header-actions">
        <button id="cancelBtn" class="hidden">Cancel</button>
        <button id="codeBtn" disabled>View code</button>
        <button id="copyBtn" disabled>Copy</button>
        <button id="newBtn" class="hidden">New upload</button>
      </div>
    </div>
    <div class="stage-body">
      <input id="fileInput" type="file" class="hidden">

      <div class="drop-zone" id="dropZone">
        <h3 id="dropTitle">Upload Design to Edit</h3>
        <p>Drag &amp; drop a screenshot (PNG, JPG, WebP)<br>or a .fig file to see the export guide</p>
      </div>

      <div class="guide hidden" id="guide">
        <h3 id="guideTitle"></h3>
        <p id="guideMessage"></p>
        <ol id="guideSteps"></ol>
        <div class="guide-actions">
          <button id="guideBack">Back</button>
          <button id="guideUpload" class="primary">Upload Image</button>
        </div>
        <p class="tip" id="guideTip"></p>
      </div>

      <div class="preview-wrap hidden" id="previewWrap"></div>
      <div class="code-view" id="codeView"></div>

      <div class="notice" id="notice">
        <span id="noticeText"></span>
        <button id="noticeDismiss">Dismiss</button>
      </div>
    </div>
  </div>

  <div class="divider"></div>

  <div class="chat">
    <div class="panel-header"><h2>AI Editor</h2></div>
    <div class="chat-body">
      <p>Your design is converted to code. Describe a change and the whole page is regenerated.</p>
      <div class="example">"Change the background to a dark gradient"</div>
      <div class="example">"Make the buttons rounder and larger"</div>
    </div>
    <form class="chat-form" id="chatForm">
      <input id="chatInput" type="text" placeholder="Describe a change..." autocomplete="off" disabled>
      <button type="submit" id="chatSend" class="primary" disabled>Send</button>
    </form>
  </div>
</div>

<script>
  const SANDBOX_POLICY = /*__SANDBOX_POLICY__*/;
  const ACCEPT = /*__ACCEPT__*/;

  const fileInput = document.getElementById('fileInput');
  const dropZone = document.getElementById('dropZone');
  const dropTitle = document.getElementById('dropTitle');
  const guideEl = document.getElementById('guide');
  const previewWrap = document.getElementById('previewWrap');
  const codeView = document.getElementById('codeView');
  const statusEl = document.getElementById('status');
  const noticeEl = document.getElementById('notice');
  const noticeText = document.getElementById('noticeText');
  const chatInput = document.getElementById('chatInput');
  const chatSend = document.getElementById('chatSend');
  const cancelBtn = document.getElementById('cancelBtn');
  const codeBtn = document.getElementById('codeBtn');
  const copyBtn = document.getElementById('copyBtn');
  const newBtn = document.getElementById('newBtn');

  fileInput.accept = ACCEPT;

  let shownVersion = 0;
  let pollHandle = null;
  let uploadMode = false;
  let timerHandle = null;
  let timerStart = 0;

  function startTimer(label) {
    stopTimer();
    timerStart = Date.now();
    const tick = () => {
      const s = ((Date.now() - timerStart) / 1000).toFixed(1);
      statusEl.innerHTML = '<span class="spinner"></span>' + label + ' <span class="timer">' + s + 's</span>';
    };
    tick();
    timerHandle = setInterval(tick, 100);
  }

  function stopTimer() {
    if (timerHandle) clearInterval(timerHandle);
    timerHandle = null;
  }

  function showNotice(message) {
    noticeText.textContent = message;
    noticeEl.classList.add('visible');
  }

  function hideNotice() { noticeEl.classList.remove('visible'); }

  function replaceFrame(url) {
    // a brand-new frame per version, never patched in place
    previewWrap.innerHTML = '';
    const frame = document.createElement('iframe');
    frame.title = 'Preview';
    frame.setAttribute('sandbox', SANDBOX_POLICY);
    frame.src = url;
    previewWrap.appendChild(frame);
  }

  function applyState(s) {
    const busy = s.status === 'in_flight';
    const showUpload = !s.has_artifact || uploadMode;

    guideEl.classList.toggle('hidden', s.state !== 'guidance');
    dropZone.classList.toggle('hidden', s.state === 'guidance' || !showUpload);
    dropZone.classList.toggle('busy', busy);
    previewWrap.classList.toggle('hidden', showUpload || s.state === 'guidance');
    dropTitle.textContent = s.state === 'synthesizing' ? 'Analyzing Design...' : 'Upload Design to Edit';

    chatInput.disabled = busy || !s.has_artifact;
    chatSend.disabled = busy || !s.has_artifact;
    chatInput.placeholder = busy ? 'AI is thinking...' : 'Describe a change...';
    cancelBtn.classList.toggle('hidden', !busy);
    codeBtn.disabled = !s.has_artifact;
    copyBtn.disabled = !s.has_artifact;
    newBtn.classList.toggle('hidden', !s.has_artifact || busy);

    if (s.version !== shownVersion) {
      shownVersion = s.version;
      uploadMode = false;
      previewWrap.classList.remove('hidden');
      dropZone.classList.add('hidden');
      replaceFrame(s.preview_url);
      if (codeView.classList.contains('visible')) loadCode();
    }

    if (busy) {
      if (!timerHandle) startTimer(s.state === 'synthesizing' ? 'Generating code' : 'Applying change');
      if (!pollHandle) pollHandle = setInterval(poll, 1000);
    } else {
      stopTimer();
      if (pollHandle) { clearInterval(pollHandle); pollHandle = null; }
      statusEl.innerHTML = s.elapsed != null && s.has_artifact
        ? 'Completed in <span class="timer">' + s.elapsed + 's</span>' : '';
    }

    if (s.error) showNotice(s.error); else hideNotice();
  }

  async function poll() {
    try {
      const res = await fetch('/api/state');
      applyState(await res.json());
    } catch (e) {
      showNotice(e.message);
    }
  }

  async function post(url, options) {
    const res = await fetch(url, Object.assign({ method: 'POST' }, options || {}));
    const data = await res.json();
    if (!res.ok) throw new Error(data.error || ('Request failed (' + res.status + ')'));
    return data;
  }

  async function uploadFile(file) {
    hideNotice();
    const form = new FormData();
    form.append('file', file);
    try {
      const data = await post('/api/upload', { body: form });
      if (data.guide) renderGuide(data.guide);
      applyState(data);
    } catch (e) {
      showNotice(e.message);
    }
  }

  function renderGuide(guide) {
    document.getElementById('guideTitle').textContent = guide.title;
    document.getElementById('guideMessage').textContent = guide.message;
    document.getElementById('guideTip').textContent = guide.tip;
    const steps = document.getElementById('guideSteps');
    steps.innerHTML = '';
    guide.steps.forEach(step => {
      const li = document.createElement('li');
      li.textContent = step;
      steps.appendChild(li);
    });
  }

  async function loadCode() {
    const res = await fetch('/api/artifact');
    if (!res.ok) return null;
    const data = await res.json();
    codeView.textContent = data.code;
    return data.code;
  }

  dropZone.addEventListener('click', () => fileInput.click());
  fileInput.addEventListener('change', () => {
    if (fileInput.files && fileInput.files[0]) uploadFile(fileInput.files[0]);
    fileInput.value = '';
  });

  ['dragenter', 'dragover'].forEach(type => dropZone.addEventListener(type, e => {
    e.preventDefault();
    dropZone.classList.add('active');
  }));
  dropZone.addEventListener('dragleave', e => {
    e.preventDefault();
    dropZone.classList.remove('active');
  });
  dropZone.addEventListener('drop', e => {
    e.preventDefault();
    dropZone.classList.remove('active');
    if (e.dataTransfer.files && e.dataTransfer.files[0]) uploadFile(e.dataTransfer.files[0]);
  });

  document.getElementById('guideBack').addEventListener('click', async () => {
    applyState(await post('/api/guidance/back'));
  });
  document.getElementById('guideUpload').addEventListener('click', async () => {
    applyState(await post('/api/guidance/back'));
    setTimeout(() => fileInput.click(), 100);
  });

  document.getElementById('chatForm').addEventListener('submit', async e => {
    e.preventDefault();
    const instruction = chatInput.value.trim();
    if (!instruction || chatInput.disabled) return;
    hideNotice();
    try {
      const data = await post('/api/refine', {
        headers: { 'Content-Type': 'application/json' },
        body: JSON.stringify({ instruction }),
      });
      chatInput.value = '';
      applyState(data);
    } catch (err) {
      showNotice(err.message);
    }
  });

  cancelBtn.addEventListener('click', async () => applyState(await post('/api/cancel')));
  document.getElementById('noticeDismiss').addEventListener('click', async () => {
    hideNotice();
    applyState(await post('/api/dismiss'));
  });

  codeBtn.addEventListener('click', async () => {
    const visible = codeView.classList.toggle('visible');
    codeBtn.textContent = visible ? 'Preview' : 'View code';
    if (visible) await loadCode();
  });

  copyBtn.addEventListener('click', async () => {
    const code = await loadCode();
    if (code == null) return;
    navigator.clipboard.writeText(code);
    copyBtn.textContent = 'Copied!';
    setTimeout(() => copyBtn.textContent = 'Copy', 1500);
  });

  newBtn.addEventListener('click', () => {
    uploadMode = true;
    poll();
  });

  poll();
</script>
</body>
</html>
"""

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    create_app().run(debug=True, port=5001, threaded=True)
