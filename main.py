#!/usr/bin/env python
import os
import sys

from PySide6.QtWidgets import (
    QApplication, QMainWindow, QWidget, QVBoxLayout, QHBoxLayout, QPushButton,
    QLabel, QFileDialog, QTextEdit, QListWidget, QProgressBar, QMessageBox, QGroupBox
)
from PySide6.QtCore import QThread, Signal

from cli import dispatch, parse_cli_arguments, staging_root_from
from game_locator import GAME_EXECUTABLE_NAME, find_game_executable, install_root_from_executable, search_for_install_paths
from installer import Installer, InstallOutcome
from runtime_redist import make_runtime_task
from uninstaller import Uninstaller, UninstallOutcome, is_uninstallable
from utils import write_log, is_admin, load_saved_game_directory, save_game_directory
from version import APP_VERSION

DARK_CONTROL_COLOR = "#2D2D30"
LIGHT_FORE_COLOR = "#FFFFFF"


class _LoggingWorker(QThread):
    log_message = Signal(str)

    def handle_write_log(self, full_message, category, html_message, plain_message):
        # Called from the worker thread; the signal hands the line to the GUI thread.
        self.log_message.emit(html_message)


class InstallWorker(_LoggingWorker):
    progress = Signal(int, str)
    install_finished = Signal(bool, str)

    def __init__(self, staging_root, install_root):
        super().__init__()
        self.staging_root = staging_root
        self.install_root = install_root

    def run(self):
        installer = Installer(
            self.staging_root,
            log_widget=self,
            progress=self.progress.emit,
            runtime_task=make_runtime_task(self.staging_root, self),
        )
        try:
            outcome = installer.install(self.install_root)
        except Exception as exc:  # noqa: BLE001 - shown to the user
            self.install_finished.emit(False, str(exc))
            return
        self.install_finished.emit(True, outcome.value)


class UninstallWorker(_LoggingWorker):
    uninstall_finished = Signal(bool, str)

    def __init__(self, uninstaller):
        super().__init__()
        self.uninstaller = uninstaller
        self.uninstaller.log_widget = self

    def run(self):
        try:
            outcome = self.uninstaller.start_uninstall()
        except Exception as exc:  # noqa: BLE001 - shown to the user
            self.uninstall_finished.emit(False, str(exc))
            return
        self.uninstall_finished.emit(True, outcome.value)


class MainWindow(QMainWindow):
    def __init__(self, staging_root, game_dir=None):
        super().__init__()
        self.staging_root = staging_root
        self.worker = None
        self.uninstaller = None
        self.setWindowTitle(f"Shader Patch Installer {APP_VERSION}")

        central = QWidget(self)
        layout = QVBoxLayout(central)
        self.setCentralWidget(central)

        if is_uninstallable(staging_root):
            layout.addWidget(self._build_uninstall_group())
            self.resize(420, 320)
        else:
            layout.addWidget(self._build_install_group())
            self.resize(640, 480)

        self.progress_bar = QProgressBar()
        self.progress_bar.setRange(0, 100)
        self.progress_bar.setValue(0)
        layout.addWidget(self.progress_bar)

        self.status_label = QLabel("")
        layout.addWidget(self.status_label)

        self.log_text = QTextEdit()
        self.log_text.setReadOnly(True)
        self.log_text.setStyleSheet(f"background-color: {DARK_CONTROL_COLOR}; color: {LIGHT_FORE_COLOR};")
        layout.addWidget(self.log_text)

        if not is_uninstallable(staging_root):
            self._populate_candidates(game_dir)

    def _build_install_group(self):
        group = QGroupBox("Install Shader Patch", self)
        group_layout = QVBoxLayout(group)
        group_layout.addWidget(QLabel(f"Select your {GAME_EXECUTABLE_NAME}:"))

        self.game_dir_list = QListWidget()
        group_layout.addWidget(self.game_dir_list)

        buttons = QHBoxLayout()
        self.browse_btn = QPushButton("Browse...")
        self.browse_btn.clicked.connect(self.browse_for_install_path)
        buttons.addWidget(self.browse_btn)
        self.install_btn = QPushButton("Install")
        self.install_btn.clicked.connect(self.start_install)
        buttons.addWidget(self.install_btn)
        group_layout.addLayout(buttons)
        return group

    def _build_uninstall_group(self):
        group = QGroupBox("Uninstall Shader Patch", self)
        group_layout = QVBoxLayout(group)
        group_layout.addWidget(QLabel("Shader Patch is installed in this directory."))
        self.uninstall_btn = QPushButton("Uninstall")
        self.uninstall_btn.clicked.connect(self.start_uninstall)
        group_layout.addWidget(self.uninstall_btn)
        return group

    def _populate_candidates(self, game_dir):
        for directory in (game_dir, load_saved_game_directory()):
            executable = find_game_executable(directory) if directory else None
            if executable:
                self.add_candidate(executable)
            elif directory:
                write_log(f"{GAME_EXECUTABLE_NAME} not found in {directory}.", "Warning", self.log_text)
        for executable in search_for_install_paths():
            self.add_candidate(executable)
        if self.game_dir_list.count():
            self.game_dir_list.setCurrentRow(0)

    def add_candidate(self, executable):
        existing = {os.path.normcase(self.game_dir_list.item(i).text()) for i in range(self.game_dir_list.count())}
        if os.path.normcase(executable) not in existing:
            self.game_dir_list.addItem(executable)

    def browse_for_install_path(self):
        path, _ = QFileDialog.getOpenFileName(
            self, f"Select {GAME_EXECUTABLE_NAME}", "", f"SWBFII Executable ({GAME_EXECUTABLE_NAME})"
        )
        if not path:
            return
        self.add_candidate(os.path.normpath(path))
        self.game_dir_list.setCurrentRow(self.game_dir_list.count() - 1)

    def _set_busy(self, busy):
        for name in ("install_btn", "browse_btn", "uninstall_btn"):
            button = getattr(self, name, None)
            if button is not None:
                button.setEnabled(not busy)

    def _on_progress(self, percent, message):
        self.progress_bar.setValue(percent)
        self.status_label.setText(message)

    def start_install(self):
        item = self.game_dir_list.currentItem()
        if item is None:
            QMessageBox.warning(self, "No Game Selected", f"Select or browse for {GAME_EXECUTABLE_NAME} first.")
            return
        install_root = install_root_from_executable(item.text())
        if not save_game_directory(install_root):
            write_log("Failed to remember the selected game directory.", "Warning", self.log_text)

        self._set_busy(True)
        self.worker = InstallWorker(self.staging_root, install_root)
        self.worker.log_message.connect(self.log_text.append)
        self.worker.progress.connect(self._on_progress)
        self.worker.install_finished.connect(self.on_install_finished)
        self.worker.start()

    def on_install_finished(self, success, message):
        self._set_busy(False)
        self.worker = None
        if success:
            self.progress_bar.setValue(100)
            if message == InstallOutcome.DELEGATED.value:
                write_log("Installed with administrator rights.", "Success", self.log_text)
            QMessageBox.information(self, "Shader Patch Installed", "Shader Patch was installed successfully.")
            return
        self.progress_bar.setValue(0)
        QMessageBox.critical(
            self,
            "Install Failed",
            f'Failed to install Shader Patch. Exception message was "{message}".',
        )

    def start_uninstall(self):
        reply = QMessageBox.question(
            self, "Uninstall Shader Patch", "Remove Shader Patch and restore the original game files?",
            QMessageBox.Yes | QMessageBox.No
        )
        if reply != QMessageBox.Yes:
            write_log("Uninstall canceled by user.", "Info", self.log_text)
            return
        self._set_busy(True)
        self.uninstaller = Uninstaller(self.staging_root)
        self.worker = UninstallWorker(self.uninstaller)
        self.worker.log_message.connect(self.log_text.append)
        self.worker.uninstall_finished.connect(self.on_uninstall_finished)
        self.worker.start()

    def on_uninstall_finished(self, success, message):
        self.worker = None
        if not success:
            self._set_busy(False)
            QMessageBox.critical(self, "Uninstall Failed", f"Failed to uninstall Shader Patch: {message}")
            return
        if message == UninstallOutcome.REMOVED.value:
            try:
                self.uninstaller.finish_uninstall()
            except OSError as exc:
                write_log(f"Failed to schedule final cleanup: {exc}", "Error", self.log_text)
            QMessageBox.information(self, "Shader Patch Uninstalled", "Shader Patch was uninstalled.")
        QApplication.quit()


def main() -> int:
    """Run an elevated re-entry mode, or launch the installer GUI."""
    cli_args = parse_cli_arguments()
    write_log(f"Process PID {os.getpid()} elevated={is_admin()}", "Info")
    exit_code = dispatch(cli_args)
    if exit_code is not None:
        return exit_code

    app = QApplication(sys.argv)
    window = MainWindow(staging_root_from(cli_args), cli_args.game_dir)
    window.show()
    return app.exec()


if __name__ == "__main__":
    sys.exit(main())
