"""
Preview project template

미리보기 샌드박스에 마운트할 Vite + React + Tailwind 프로젝트를 생성한다.
FileSystemTree 형식: {name: {"file": {"contents": str}} | {"directory": {...}}}
"""

import json
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..core.exceptions import RequestValidationFailed
from .repo_path import build_file_path

logger = logging.getLogger("codebridge.preview_template")

FileSystemTree = Dict[str, Dict[str, Any]]

COMPONENTS_DIR = "src/components"

BASE_PACKAGE_JSON: Dict[str, Any] = {
    "name": "preview-app",
    "private": True,
    "version": "0.0.0",
    "type": "module",
    "scripts": {
        "dev": "vite",
        "build": "vite build",
        "preview": "vite preview",
    },
    "dependencies": {
        "react": "^18.3.1",
        "react-dom": "^18.3.1",
    },
    "devDependencies": {
        "@vitejs/plugin-react": "^4.3.4",
        "autoprefixer": "^10.4.21",
        "postcss": "^8.5.6",
        "tailwindcss": "^3.4.17",
        "vite": "^5.4.19",
    },
}

# 샌드박스 런타임이 PORT 환경변수로 포트를 지정함
VITE_CONFIG = """import { defineConfig } from "vite";
import react from "@vitejs/plugin-react";

export default defineConfig({
  plugins: [react()],
  server: {
    host: "127.0.0.1",
    port: Number(process.env.PORT) || 5173,
    strictPort: true,
  },
});
"""

INDEX_HTML = """<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="UTF-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1.0" />
    <title>Preview</title>
    <link rel="icon" href="data:," />
  </head>
  <body>
    <div id="root"></div>
    <script type="module" src="/src/main.tsx"></script>
  </body>
</html>"""

TAILWIND_CONFIG = """/** @type {import('tailwindcss').Config} */
export default {
  content: ["./index.html", "./src/**/*.{js,ts,jsx,tsx}"],
  theme: { extend: {} },
  plugins: [],
};
"""

POSTCSS_CONFIG = """export default {
  plugins: {
    tailwindcss: {},
    autoprefixer: {},
  },
};
"""

MAIN_TSX = """import { createRoot } from "react-dom/client";
import App from "./App.tsx";
import "./index.css";

createRoot(document.getElementById("root")!).render(<App />);
"""

INDEX_CSS = """@tailwind base;
@tailwind components;
@tailwind utilities;

body {
  margin: 0;
  padding: 40px;
  background: #0a0a0a;
  color: #f5f5f5;
  font-family: system-ui, sans-serif;
  min-height: 100vh;
}
"""


def _build_app_tsx(component_name: str, component_path: str) -> str:
    return f"""import {component_name} from "{component_path}";

function App() {{
  return (
    <div className="p-6">
      <h2 className="text-xs uppercase tracking-wider text-zinc-500 mb-4">{component_name} Preview</h2>
      <{component_name} />
    </div>
  );
}}

export default App;
"""


def placeholder_component(component_name: str) -> str:
    return (
        f"export default function {component_name}() {{\n"
        f'  return <div className="p-4 text-zinc-400">No React output. Select React in frameworks.</div>;\n'
        f"}}"
    )


def to_file_system_tree(files: Mapping[str, str]) -> FileSystemTree:
    """평탄한 {경로: 내용} 맵을 중첩 FileSystemTree 로 변환"""
    tree: FileSystemTree = {}
    for path, content in files.items():
        parts = [part for part in path.split("/") if part]
        if not parts:
            continue
        current = tree
        for name in parts[:-1]:
            node = current.setdefault(name, {"directory": {}})
            if "directory" not in node:
                raise RequestValidationFailed(f"Path conflicts with an existing file: {path}")
            current = node["directory"]
        current[parts[-1]] = {"file": {"contents": content}}
    return tree


def flatten_file_system_tree(tree: Mapping[str, Any], prefix: str = "") -> Dict[str, str]:
    files: Dict[str, str] = {}
    for name, node in tree.items():
        path = f"{prefix}/{name}" if prefix else name
        if "directory" in node:
            files.update(flatten_file_system_tree(node["directory"], path))
        else:
            files[path] = node["file"]["contents"]
    return files


class PreviewTemplateService:
    """고정된 프로젝트 골격에 생성된 컴포넌트를 주입한다"""

    def __init__(self, package_json: Optional[Dict[str, Any]] = None):
        self.package_json = package_json or BASE_PACKAGE_JSON

    def component_paths(self, component_name: str) -> Dict[str, str]:
        if not component_name or not component_name.isidentifier() or not component_name[0].isupper():
            raise RequestValidationFailed(f"Invalid component name: {component_name}")
        code_path = build_file_path(COMPONENTS_DIR, f"{component_name}.tsx")
        css_path = build_file_path(COMPONENTS_DIR, f"{component_name}.css")
        if code_path is None or css_path is None:
            raise RequestValidationFailed(f"Invalid component name: {component_name}")
        return {"code": str(code_path), "css": str(css_path)}

    def build_files(self, component_name: str, component_code: str, component_css: str) -> Dict[str, str]:
        paths = self.component_paths(component_name)
        return {
            "package.json": json.dumps(self.package_json, indent=2),
            "vite.config.ts": VITE_CONFIG,
            "index.html": INDEX_HTML,
            "tailwind.config.js": TAILWIND_CONFIG,
            "postcss.config.js": POSTCSS_CONFIG,
            "src/main.tsx": MAIN_TSX,
            "src/App.tsx": _build_app_tsx(component_name, f"./components/{component_name}"),
            "src/index.css": INDEX_CSS,
            paths["code"]: component_code,
            paths["css"]: component_css,
        }

    def build_preview_project(
        self, component_name: str, component_code: str, component_css: str
    ) -> FileSystemTree:
        files = self.build_files(component_name, component_code, component_css)
        logger.debug(f"preview project built for {component_name}: {len(files)} files")
        return to_file_system_tree(files)


def _find_react_file(files: Iterable[Mapping[str, Any]]) -> Optional[Mapping[str, Any]]:
    for f in files:
        name = f.get("name", "")
        content = f.get("content") or ""
        if name.endswith(".jsx"):
            return f
        if name.endswith(".tsx") and not name.endswith(".lite.tsx") and 'from "react"' in content:
            return f
    return None


def _find_css_file(files: Iterable[Mapping[str, Any]], component_name: str) -> Optional[Mapping[str, Any]]:
    name_lower = component_name.lower()
    for f in files:
        name = f.get("name", "")
        if name.endswith(".css") and name_lower in name.lower():
            return f
    return None


def extract_react_preview_files(files: List[Mapping[str, Any]], component_name: str) -> Dict[str, str]:
    """변환 결과 파일 중 React 코드와 CSS 를 고른다. 없으면 placeholder"""
    component_code = placeholder_component(component_name)
    component_css = f"/* {component_name} */"

    react_file = _find_react_file(files)
    css_file = _find_css_file(files, component_name)
    if react_file and react_file.get("content"):
        component_code = react_file["content"]
    if css_file and css_file.get("content"):
        component_css = css_file["content"]

    return {"componentCode": component_code, "componentCss": component_css}


def preview_path_to_file_name(files: List[Mapping[str, Any]], component_name: str) -> Dict[str, str]:
    """샌드박스 경로 → 변환 결과 파일 이름 매핑 (에디터 변경분 동기화용)"""
    mapping: Dict[str, str] = {}
    react_file = _find_react_file(files)
    css_file = _find_css_file(files, component_name)
    if react_file:
        mapping[f"{COMPONENTS_DIR}/{component_name}.tsx"] = react_file["name"]
    if css_file:
        mapping[f"{COMPONENTS_DIR}/{component_name}.css"] = css_file["name"]
    return mapping


def get_template_service() -> PreviewTemplateService:
    return PreviewTemplateService()
