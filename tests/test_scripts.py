"""
Tests for the operator scripts.

This test suite verifies:
- register_face.py registers and reports JSON
- Both scripts report an unavailable gallery instead of crashing

Run with: pytest tests/test_scripts.py -v
"""

import json
import os
import sys

import cv2
import numpy as np
import pytest
import yaml

# Add project root and scripts to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)
sys.path.insert(0, os.path.join(PROJECT_ROOT, "scripts"))

import recognize_faces
import register_face


def write_config(tmp_path, db_path):
    config = {
        "storage": {"db_path": str(db_path)},
        "embedding": {"backend": "stub", "dimension": 3},
        "logging": {"level": "WARNING"},
    }
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(config))
    return str(path)


@pytest.fixture
def image_path(tmp_path):
    path = tmp_path / "alice.png"
    cv2.imwrite(str(path), np.full((40, 40, 3), 120, dtype=np.uint8))
    return str(path)


@pytest.fixture
def broken_gallery_config(tmp_path):
    """db_path points at a directory, so the database cannot be opened."""
    db_dir = tmp_path / "gallery_dir"
    db_dir.mkdir()
    return write_config(tmp_path, db_dir)


class TestRegisterFaceScript:

    def test_register_prints_result(self, tmp_path, image_path, capsys):
        config = write_config(tmp_path, tmp_path / "gallery.sqlite")

        code = register_face.main([image_path, "--identity", "alice", "--source", "a1",
                                   "--no-detect", "--config", config])

        assert code == 0
        data = json.loads(capsys.readouterr().out)
        assert data["status"] == "stored"
        assert data["identity"] == "alice"

    def test_unavailable_gallery_reports_storage_error(self, image_path, broken_gallery_config, capsys):
        code = register_face.main([image_path, "--identity", "alice", "--no-detect",
                                   "--config", broken_gallery_config])

        assert code == 1
        data = json.loads(capsys.readouterr().out)
        assert data["status"] == "storage_error"
        assert data["source"] == image_path

    def test_blank_identity_exits_with_failure(self, tmp_path, image_path):
        config = write_config(tmp_path, tmp_path / "gallery.sqlite")
        code = register_face.main([image_path, "--identity", "  ", "--no-detect", "--config", config])
        assert code == 1


class TestRecognizeFacesScript:

    def test_unavailable_gallery_exits_2(self, image_path, broken_gallery_config):
        code = recognize_faces.main([image_path, "--no-output", "--config", broken_gallery_config])
        assert code == 2

    def test_no_images_exits_1(self, tmp_path):
        config = write_config(tmp_path, tmp_path / "gallery.sqlite")
        empty = tmp_path / "empty"
        empty.mkdir()
        assert recognize_faces.main([str(empty), "--no-output", "--config", config]) == 1
