"""Runtime - JavaScript emitted around the bundled modules.

The bundle is one call expression: the runtime function receives the module
table (bundle id -> factory), the topological order and the entry id. Each
factory runs at most once, the first time it is required, and its exports
object is cached. Running the order list first guarantees every module
initialises after its dependencies.
"""

from __future__ import annotations

import json

REQUIRE = "__kiln_require__"
DEFAULT_LOCAL = "__kiln_default__"
LIVERELOAD_PATH = "/__livereload"

RUNTIME_PROLOGUE = """(function (modules, order, entry) {
  "use strict";
  var installed = {};
  function __kiln_require__(id) {
    var cached = installed[id];
    if (cached !== undefined) return cached.exports;
    var factory = modules[id];
    if (factory === undefined) {
      throw new Error("kiln: module '" + id + "' is not part of this bundle");
    }
    var module = (installed[id] = { id: id, exports: {} });
    factory(module, module.exports, __kiln_require__);
    return module.exports;
  }
  __kiln_require__.d = function (exports, name, getter) {
    if (!Object.prototype.hasOwnProperty.call(exports, name)) {
      Object.defineProperty(exports, name, { enumerable: true, get: getter });
    }
  };
  __kiln_require__.r = function (exports) {
    Object.defineProperty(exports, "__esModule", { value: true });
  };
  __kiln_require__.s = function (exports, source) {
    Object.keys(source).forEach(function (name) {
      if (name !== "default") {
        __kiln_require__.d(exports, name, function () { return source[name]; });
      }
    });
  };
  for (var i = 0; i < order.length; i++) __kiln_require__(order[i]);
  return __kiln_require__(entry);
})({
"""

# Live-reload client, injected in development mode when hot reload is on.
# It reloads the page on "update" and shows an overlay on "error".
LIVERELOAD_CLIENT = """(function () {
  if (typeof window === "undefined" || typeof EventSource === "undefined") return;
  if (window.__kiln_livereload__) return;
  window.__kiln_livereload__ = true;
  var source = new EventSource(%(endpoint)s);
  var session = null;
  var overlay = null;
  function hideOverlay() {
    if (overlay && overlay.parentNode) overlay.parentNode.removeChild(overlay);
    overlay = null;
  }
  function showOverlay(message) {
    hideOverlay();
    overlay = document.createElement("pre");
    overlay.id = "kiln-error-overlay";
    overlay.style.cssText = "position:fixed;inset:0;margin:0;padding:2em;z-index:2147483647;" +
      "background:rgba(24,0,0,0.92);color:#ffb4b4;font:14px/1.5 monospace;white-space:pre-wrap;overflow:auto";
    overlay.textContent = "Build failed\\n\\n" + message;
    document.body.appendChild(overlay);
  }
  source.onmessage = function (event) {
    var message = JSON.parse(event.data);
    if (message.type === "hello") {
      session = message.session;
    } else if (message.type === "update") {
      if (session !== null && window.fetch) {
        fetch(%(endpoint)s + "/ack", {
          method: "POST",
          headers: { "Content-Type": "application/json" },
          body: JSON.stringify({ session: session, version: message.version })
        }).finally(function () { window.location.reload(); });
      } else {
        window.location.reload();
      }
    } else if (message.type === "error") {
      showOverlay(message.message);
    }
  };
})();
"""


def runtime_epilogue(order: list[str], entry: str) -> str:
    """Closing part of the bundle: order list and entry id arguments."""
    return "}, %s, %s);\n" % (json.dumps(order), json.dumps(entry))


def livereload_client(endpoint: str = LIVERELOAD_PATH) -> str:
    """Return the live-reload client script for ``endpoint``."""
    return LIVERELOAD_CLIENT % {"endpoint": json.dumps(endpoint)}
