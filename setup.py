from setuptools import setup, find_namespace_packages

if __name__ =='__main__':
    setup(
        name='MistFlow',
        version='1.0',
        description='Real-time MLS-MPM cloud simulation',
        author='Krushang Gabani',
        author_email='krushang@buffalo.edu',
        keywords='Physics Simulation',
        packages=find_namespace_packages(include=["mistflow", "mistflow.*"]),
        python_requires='>=3.8',
        install_requires = [
            "numpy",
            "taichi",
            "pyyaml",
            "yacs"
        ],
        extras_require = {
            "test": ["pytest>=7"]
        }

    )
