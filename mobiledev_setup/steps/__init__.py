from .base import EnvironmentStep, Step, StepContext
from .step_05_package_manager import PackageManagerStep
from .step_08_secondary_package_manager import SecondaryPackageManagerStep
from .step_10_system_packages import SystemPackagesStep
from .step_20_install_jdk import InstallJdkStep
from .step_25_java_environment import JavaEnvironmentStep
from .step_30_android_cmdline_tools import AndroidCmdlineToolsStep
from .step_35_android_licenses import AndroidLicensesStep
from .step_40_android_sdk_packages import AndroidSdkPackagesStep
from .step_45_android_environment import AndroidEnvironmentStep
from .step_50_install_flutter import InstallFlutterStep
from .step_55_flutter_environment import FlutterEnvironmentStep
from .step_60_configure_flutter import ConfigureFlutterStep
from .step_70_android_toolchain_doctor import AndroidToolchainDoctorStep
from .step_75_create_avd import CreateAvdStep
from .step_80_virtualization import VirtualizationStep
from .step_90_flutter_doctor import FlutterDoctorStep

__all__ = [
    "Step",
    "StepContext",
    "EnvironmentStep",
    "PackageManagerStep",
    "SecondaryPackageManagerStep",
    "SystemPackagesStep",
    "InstallJdkStep",
    "JavaEnvironmentStep",
    "AndroidCmdlineToolsStep",
    "AndroidLicensesStep",
    "AndroidSdkPackagesStep",
    "AndroidEnvironmentStep",
    "InstallFlutterStep",
    "FlutterEnvironmentStep",
    "ConfigureFlutterStep",
    "AndroidToolchainDoctorStep",
    "CreateAvdStep",
    "VirtualizationStep",
    "FlutterDoctorStep",
]
