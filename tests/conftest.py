"""Test configuration for gradleguard."""

import tempfile
from pathlib import Path

import pytest

SAMPLE_DESCRIPTOR = '''plugins {
    id("com.android.application")
    // START: FlutterFire Configuration
    id("com.google.gms.google-services")
    // END: FlutterFire Configuration
    id("kotlin-android")
    id("dev.flutter.flutter-gradle-plugin")
}

android {
    namespace = "com.curtis.via"
    compileSdk = flutter.compileSdkVersion
    ndkVersion = "27.0.12077973"

    compileOptions {
        sourceCompatibility = JavaVersion.VERSION_11
        targetCompatibility = JavaVersion.VERSION_11
    }

    kotlinOptions {
        jvmTarget = JavaVersion.VERSION_11.toString()
    }

    defaultConfig {
        applicationId = "com.curtis.via"
        minSdk = 26
        targetSdk = flutter.targetSdkVersion
        versionCode = flutter.versionCode
        versionName = flutter.versionName
        multiDexEnabled = true
        testInstrumentationRunner = "androidx.test.runner.AndroidJUnitRunner"
    }

    signingConfigs {
        create("release") {
            keyAlias = System.getenv("KEY_ALIAS") ?: "via-release"
            keyPassword = System.getenv("KEY_PASSWORD") ?: "via-release-password"
            storeFile = file(System.getenv("KEYSTORE_PATH") ?: "via-release.keystore")
            storePassword = System.getenv("STORE_PASSWORD") ?: "via-release-password"
        }
    }

    buildTypes {
        release {
            isMinifyEnabled = true
            isShrinkResources = true
            proguardFiles(getDefaultProguardFile("proguard-android-optimize.txt"), "proguard-rules.pro")
            signingConfig = signingConfigs.getByName("release")
            buildConfigField("boolean", "ENABLE_CRASH_REPORTING", "true")
            buildConfigField("boolean", "ENABLE_ANALYTICS", "true")
        }

        debug {
            isDebuggable = true
            applicationIdSuffix = ".debug"
            versionNameSuffix = "-debug"
            buildConfigField("boolean", "ENABLE_CRASH_REPORTING", "false")
            buildConfigField("boolean", "ENABLE_ANALYTICS", "false")
        }
    }

    buildFeatures {
        buildConfig = true
    }

    bundle {
        language {
            enableSplit = true
        }
        density {
            enableSplit = true
        }
        abi {
            enableSplit = true
        }
    }
}

flutter {
    source = "../.."
}

dependencies {
    implementation("androidx.multidex:multidex:2.0.1")
    implementation("androidx.security:security-crypto:1.1.0-alpha06")
    implementation("androidx.biometric:biometric:1.1.0")
    implementation("androidx.work:work-runtime-ktx:2.9.0")
    implementation("androidx.room:room-runtime:2.6.1")
    implementation("androidx.room:room-ktx:2.6.1")
    implementation("androidx.lifecycle:lifecycle-runtime-ktx:2.7.0")
    implementation("androidx.lifecycle:lifecycle-viewmodel-ktx:2.7.0")
    implementation("org.jetbrains.kotlinx:kotlinx-coroutines-android:1.7.3")
    implementation("androidx.security:security-network-security:1.0.0")
}
'''

RELEASE_ENV = {
    "KEY_ALIAS": "upload",
    "KEY_PASSWORD": "s3cret-key",
    "KEYSTORE_PATH": "/secure/upload.jks",
    "STORE_PASSWORD": "s3cret-store",
}


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests.

    Yields:
        Path: A Path object pointing to the temporary directory.
            The directory is automatically cleaned up after the test.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_text():
    """Build script of a Flutter application module."""
    return SAMPLE_DESCRIPTOR


@pytest.fixture
def sample_descriptor(temp_dir, sample_text):
    """Write the sample build script to ``android/app/build.gradle.kts``.

    Returns:
        Path: The path to the written descriptor.
    """
    module_dir = temp_dir / "android" / "app"
    module_dir.mkdir(parents=True)
    path = module_dir / "build.gradle.kts"
    path.write_text(sample_text, encoding="utf-8")
    return path


@pytest.fixture
def release_env():
    """Environment providing every release signing variable."""
    return dict(RELEASE_ENV)


@pytest.fixture
def config(temp_dir):
    """Configuration independent of the process environment.

    Returns:
        Config: Defaults with storage under the temporary directory.
    """
    from gradleguard.core.config import Config, StorageConfig

    return Config(storage=StorageConfig(base_path=temp_dir / "reports"))


@pytest.fixture
def storage(temp_dir):
    """Create a storage backend for testing.

    Returns:
        LocalStorageBackend: A local storage backend rooted in the
            temporary directory.
    """
    from gradleguard.storage import LocalStorageBackend

    return LocalStorageBackend(temp_dir / "store")


@pytest.fixture
def load_descriptor():
    """Interpret build-script text without touching the filesystem."""
    from gradleguard.services.loading import DescriptorLoader

    def _load(text, name="build.gradle.kts"):
        return DescriptorLoader().load_text(text, Path("/project/app") / name)

    return _load


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo logging configuration made by a test (e.g. via the CLI).

    ``setup_logging`` binds structlog to the current ``sys.stderr``, which
    test runners replace and close after each test.
    """
    import sys

    import structlog
    from structlog._config import BoundLoggerLazyProxy

    yield
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()
    # Module-level loggers cache their first bound logger (and its stream).
    for name, module in list(sys.modules.items()):
        if not name.startswith("gradleguard"):
            continue
        for value in list(vars(module).values()):
            if isinstance(value, BoundLoggerLazyProxy):
                value.__dict__.pop("bind", None)
